from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup
from PIL import Image, UnidentifiedImageError

from .decisions import round_half_up, svg_intrinsic_size
from .models import ImageMeta, SvgRoot

logger = logging.getLogger(__name__)

URL_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")
EXTENSION_ALIASES = {"jpeg": "jpg"}


def is_local(src: str) -> bool:
    value = src.strip()
    if value.startswith("//"):
        return False
    return URL_SCHEME_RE.match(value) is None


def translate_src(root: Path, html_dir: Path, src: str) -> Path:
    path = unquote(urlsplit(src.strip()).path)
    if path.startswith("/"):
        target = root / path.lstrip("/")
    else:
        target = root / html_dir / path
    return target.resolve()


class Resource:
    def __init__(self, src: str, path: Path) -> None:
        self.src = src
        self.path = path
        self._data: bytes | None = None
        self._meta: ImageMeta | None = None
        self._meta_loaded = False

    def __repr__(self) -> str:
        return f"Resource({self.src!r}, {str(self.path)!r})"

    @property
    def data(self) -> bytes:
        if self._data is None:
            self._data = self.path.read_bytes()
        return self._data

    @property
    def length(self) -> int:
        if self._data is not None:
            return len(self._data)
        return self.path.stat().st_size

    @property
    def ext(self) -> str:
        ext = self.path.suffix.lower().lstrip(".")
        return EXTENSION_ALIASES.get(ext, ext)

    @property
    def is_svg(self) -> bool:
        return self.ext == "svg"

    @property
    def meta(self) -> ImageMeta | None:
        if not self._meta_loaded:
            self._meta = self._read_meta()
            self._meta_loaded = True
        return self._meta

    def svg_root(self) -> SvgRoot:
        soup = BeautifulSoup(self.data.decode("utf-8", errors="replace"), "html.parser")
        svg = soup.find("svg")
        if svg is None:
            return SvgRoot(None, None, None)
        # html.parser lowercases attribute names
        return SvgRoot(svg.get("width"), svg.get("height"), svg.get("viewbox"))

    def _read_meta(self) -> ImageMeta | None:
        if self.is_svg:
            width, height = svg_intrinsic_size(self.svg_root())
            return ImageMeta(round_half_up(width), round_half_up(height), has_alpha=True)
        try:
            with Image.open(io.BytesIO(self.data)) as image:
                width, height = image.size
                has_alpha = ("A" in image.mode) or (image.info.get("transparency") is not None)
                return ImageMeta(width, height, has_alpha)
        except (UnidentifiedImageError, OSError) as exc:
            logger.debug("can't read image metadata of %s: %s", self.path, exc)
            return None


def load_resource(root: Path, html_file: Path, src: str) -> Resource | None:
    path = translate_src(root, html_file.parent, src)
    if not path.is_file():
        return None
    return Resource(src, path)
