from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from bs4 import BeautifulSoup, Tag
from PIL import Image

from imgpack.config import ImageConfig, RunOptions, merge_config
from imgpack.models import CompressedVariant, CompressRequest, ImageFormat
from imgpack.state import RunContext


class FakeCodec:
    """Stands in for ``compress_image`` and records every request it gets."""

    def __init__(self, size: int = 10) -> None:
        self.size = size
        self.calls: list[CompressRequest] = []

    def __call__(self, data: bytes, request: CompressRequest, config: ImageConfig) -> CompressedVariant:
        self.calls.append(request)
        image_format = ImageFormat.JPG if request.target is ImageFormat.PJPG else request.target
        return CompressedVariant(image_format, b"x" * self.size)

    @property
    def base_calls(self) -> list[CompressRequest]:
        return [call for call in self.calls if call.resize is None]

    @property
    def resize_calls(self) -> list[CompressRequest]:
        return [call for call in self.calls if call.resize is not None]


@pytest.fixture
def site(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest.fixture
def make_image() -> Callable[..., Path]:
    def _make(path: Path, size: tuple[int, int] = (1000, 500), mode: str = "RGB", fmt: str = "PNG") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        color = (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)
        Image.new(mode, size, color).save(path, format=fmt)
        return path

    return _make


@pytest.fixture
def write_html() -> Callable[[Path, str, str], Path]:
    def _write(root: Path, name: str, body: str) -> Path:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"<html><body>{body}</body></html>", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_context() -> Callable[..., RunContext]:
    def _make(root: Path, nowrite: bool = False, **overrides) -> RunContext:
        config = merge_config(ImageConfig(), overrides)
        return RunContext(RunOptions(root=root.resolve(), nowrite=nowrite), config)

    return _make


@pytest.fixture
def fake_codec(monkeypatch: pytest.MonkeyPatch) -> FakeCodec:
    codec = FakeCodec()
    monkeypatch.setattr("imgpack.optimize.compress_image", codec)
    return codec


@pytest.fixture
def read_images() -> Callable[[Path], list[Tag]]:
    def _read(path: Path) -> list[Tag]:
        soup = BeautifulSoup(path.read_text(encoding="utf-8"), "html.parser")
        return soup.find_all("img")

    return _read
