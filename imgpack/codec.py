from __future__ import annotations

import io
import logging
import os
from pathlib import Path
import re
import shutil
import subprocess
import sys
import tempfile
from threading import Lock
from typing import Callable
from urllib.parse import quote

from PIL import Image, UnidentifiedImageError

from .config import ImageConfig, WebpOptions
from .models import CompressedVariant, CompressRequest, ImageFormat

logger = logging.getLogger(__name__)

WINDOWS_CREATIONFLAGS = (
    getattr(subprocess, "CREATE_NO_WINDOW", 0) if sys.platform.startswith("win") else 0
)
TOOLS_DIR_ENV = "IMGPACK_TOOLS_DIR"
_TOOL_CACHE: dict[tuple[str, ...], str | None] = {}
_ENGINE_REGISTRY: dict[ImageFormat, Callable[[Image.Image, ImageConfig], bytes]] = {}
_TOOL_LOCK = Lock()

RESULT_FORMATS = {
    ImageFormat.JPG: ImageFormat.JPG,
    ImageFormat.PJPG: ImageFormat.JPG,
    ImageFormat.PNG: ImageFormat.PNG,
    ImageFormat.WEBP: ImageFormat.WEBP,
}

SVG_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
SVG_PROLOG_RE = re.compile(r"<\?xml.*?\?>|<!DOCTYPE[^>]*>", re.DOTALL | re.IGNORECASE)
SVG_BETWEEN_TAGS_RE = re.compile(r">\s+<")
WHITESPACE_RE = re.compile(r"\s+")
SVG_UNSAFE_RE = re.compile(r"[\r\n%#()<>?\[\\\]^`{|}]")


def _run_engine_chain(engines: list[tuple[str, Callable[[], bytes | None]]]) -> bytes | None:
    for name, runner in engines:
        output = runner()
        if output is not None:
            logger.debug("encoded with %s", name)
            return output
    return None


def compress_image(
    data: bytes, request: CompressRequest, config: ImageConfig
) -> CompressedVariant | None:
    if is_svg_data(data):
        minified = minify_svg(data.decode("utf-8", errors="replace"))
        return CompressedVariant(ImageFormat.SVG, minified.encode("utf-8"))
    engine = get_engine_registry().get(request.target)
    if engine is None:
        return None
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            if request.resize:
                resized = image.resize(request.resize, Image.Resampling.LANCZOS)
                output = engine(resized, config)
            else:
                output = engine(image, config)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.debug("can't encode image to %s: %s", request.target.value, exc)
        return None
    if not output:
        return None
    return CompressedVariant(RESULT_FORMATS[request.target], output)


def has_alpha(image: Image.Image) -> bool:
    return ("A" in image.mode) or (image.info.get("transparency") is not None)


def to_rgb(image: Image.Image) -> Image.Image:
    if image.mode in {"RGB", "L"}:
        return image
    if has_alpha(image):
        background = Image.new("RGB", image.size, (255, 255, 255))
        rgba = image.convert("RGBA")
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def compress_progressive_jpeg(image: Image.Image, config: ImageConfig) -> bytes:
    rgb = to_rgb(image)
    quality = max(1, min(100, config.jpeg.quality))
    engines: list[tuple[str, Callable[[], bytes | None]]] = []
    if config.jpeg.mozjpeg:
        cjpeg = get_tool_executable(["cjpeg", "mozjpeg"])
        if cjpeg:
            engines.append(("mozjpeg", lambda: run_cjpeg(cjpeg, rgb, quality)))
    output = _run_engine_chain(engines)
    if output is not None:
        return output
    buffer = io.BytesIO()
    rgb.save(buffer, format="JPEG", quality=quality, optimize=True, progressive=True)
    return buffer.getvalue()


def compress_jpeg(image: Image.Image, config: ImageConfig) -> bytes:
    buffer = io.BytesIO()
    to_rgb(image).save(
        buffer,
        format="JPEG",
        quality=max(1, min(100, config.jpeg.quality)),
        optimize=True,
    )
    return buffer.getvalue()


def compress_png(image: Image.Image, config: ImageConfig) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG", compress_level=max(0, min(9, config.png.compression_level)))
    return buffer.getvalue()


def compress_webp(image: Image.Image, config: ImageConfig) -> bytes:
    alpha = has_alpha(image)
    options = config.webp_lossless if alpha else config.webp_lossy
    prepared = image.convert("RGBA" if alpha else "RGB")
    engines: list[tuple[str, Callable[[], bytes | None]]] = []
    cwebp = get_tool_executable(["cwebp"])
    if cwebp:
        engines.append(("cwebp", lambda: run_cwebp(cwebp, prepared, options)))
    output = _run_engine_chain(engines)
    if output is not None:
        return output
    buffer = io.BytesIO()
    prepared.save(
        buffer,
        format="WEBP",
        lossless=options.lossless,
        quality=max(0, min(100, options.quality)),
        method=max(0, min(6, options.effort)),
    )
    return buffer.getvalue()


def run_cjpeg(cjpeg: str, image: Image.Image, quality: int) -> bytes | None:
    with tempfile.TemporaryDirectory(prefix="imgpack_") as tmp:
        source = Path(tmp) / "source.ppm"
        output = Path(tmp) / "output.jpg"
        image.save(source, format="PPM")
        command = [
            cjpeg,
            "-quality",
            str(quality),
            "-progressive",
            "-optimize",
            "-outfile",
            str(output),
            str(source),
        ]
        result = run_command(command)
        if result.returncode == 0 and output.exists():
            return output.read_bytes()
    return None


def run_cwebp(cwebp: str, image: Image.Image, options: WebpOptions) -> bytes | None:
    with tempfile.TemporaryDirectory(prefix="imgpack_") as tmp:
        source = Path(tmp) / "source.png"
        output = Path(tmp) / "output.webp"
        image.save(source, format="PNG", compress_level=1)
        command = [cwebp]
        if options.lossless:
            command += ["-lossless"]
        command += [
            "-q",
            str(max(0, min(100, options.quality))),
            "-m",
            str(max(0, min(6, options.effort))),
            "-metadata",
            "none",
            str(source),
            "-o",
            str(output),
        ]
        result = run_command(command)
        if result.returncode == 0 and output.exists():
            return output.read_bytes()
    return None


# ---------- SVG ----------

def is_svg_data(data: bytes) -> bool:
    return data.lstrip().startswith(b"<") and b"<svg" in data.lower()


def minify_svg(svg: str) -> str:
    text = SVG_COMMENT_RE.sub("", svg)
    text = SVG_PROLOG_RE.sub("", text)
    text = SVG_BETWEEN_TAGS_RE.sub("><", text)
    return WHITESPACE_RE.sub(" ", text).strip()


def svg_to_data_uri(svg: str) -> str:
    body = WHITESPACE_RE.sub(" ", svg.strip()).replace('"', "'")
    body = SVG_UNSAFE_RE.sub(lambda match: quote(match.group(0), safe=""), body)
    return "data:image/svg+xml," + body


# ---------- External tools ----------

def get_tool_executable(names: list[str]) -> str | None:
    key = tuple(names)
    with _TOOL_LOCK:
        if key in _TOOL_CACHE:
            return _TOOL_CACHE[key]
    found: str | None = None
    tools_dir = os.environ.get(TOOLS_DIR_ENV)
    if tools_dir:
        for name in names:
            for path in (Path(tools_dir) / name, Path(tools_dir) / f"{name}.exe"):
                if path.exists():
                    found = str(path)
                    break
            if found:
                break
    if found is None:
        for name in names:
            system_path = shutil.which(name)
            if system_path:
                found = system_path
                break
    with _TOOL_LOCK:
        _TOOL_CACHE[key] = found
    return found


def get_engine_status(config: ImageConfig) -> dict[str, str]:
    jpg = "Pillow"
    if config.jpeg.mozjpeg and get_tool_executable(["cjpeg", "mozjpeg"]):
        jpg = "mozjpeg"
    webp = "Pillow"
    if get_tool_executable(["cwebp"]):
        webp = "cwebp"
    return {"JPG": jpg, "PNG": "Pillow", "WebP": webp, "SVG": "minify"}


def run_command(command: list[str]) -> subprocess.CompletedProcess[bytes]:
    return subprocess.run(command, capture_output=True, creationflags=WINDOWS_CREATIONFLAGS)


def get_engine_registry() -> dict[ImageFormat, Callable[[Image.Image, ImageConfig], bytes]]:
    global _ENGINE_REGISTRY
    if not _ENGINE_REGISTRY:
        _ENGINE_REGISTRY = {
            ImageFormat.JPG: compress_jpeg,
            ImageFormat.PJPG: compress_progressive_jpeg,
            ImageFormat.PNG: compress_png,
            ImageFormat.WEBP: compress_webp,
        }
    return _ENGINE_REGISTRY
