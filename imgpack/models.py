from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path


class ImageFormat(str, Enum):
    JPG = "jpg"
    PJPG = "pjpg"
    PNG = "png"
    WEBP = "webp"
    SVG = "svg"


class IssueKind(str, Enum):
    WARN = "warn"
    A11Y = "a11y"
    INVALID = "invalid"
    ERRO = "erro"


@dataclass(frozen=True)
class ImageMeta:
    width: int | None
    height: int | None
    has_alpha: bool = False


@dataclass(frozen=True)
class SvgRoot:
    width: str | None
    height: str | None
    viewbox: str | None


@dataclass(frozen=True)
class CompressRequest:
    target: ImageFormat
    resize: tuple[int, int] | None = None


@dataclass(frozen=True)
class CompressedVariant:
    format: ImageFormat
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Issue:
    kind: IssueKind
    message: str


@dataclass(frozen=True)
class SummaryEntry:
    action: str
    original_size: int
    compressed_size: int


HTML_SUFFIXES = {".htm", ".html"}


def iter_html_files(root: Path, exclude: str | None = None) -> list[Path]:
    files = []
    for path in root.rglob("*"):
        if not path.is_file() or path.suffix.lower() not in HTML_SUFFIXES:
            continue
        relative = path.relative_to(root)
        if exclude and fnmatch(relative.as_posix(), exclude):
            continue
        files.append(relative)
    return sorted(files, key=lambda item: item.as_posix())
