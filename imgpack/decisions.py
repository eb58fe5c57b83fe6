"""Decision functions of the image pipeline.

Nothing in here touches the disk: format choice, acceptance of a compressed
variant, data-URI inlining, dimension resolution and srcset stepping are all
computed from plain values so the effects layer in ``optimize`` stays thin.
"""

from __future__ import annotations

import base64
import logging
import math
import os
import re
from pathlib import Path
from typing import Callable

from .codec import svg_to_data_uri
from .errors import MetadataUnavailable
from .models import CompressedVariant, ImageFormat, ImageMeta, SvgRoot

logger = logging.getLogger(__name__)

SRCSET_STEP = 300
SVG_DEFAULT_WIDTH = 300
SVG_DEFAULT_HEIGHT = 150

NUMERIC_RE = re.compile(r"^\s*\d+(\.\d+)?\s*$")
VIEWBOX_SPLIT_RE = re.compile(r"[\s,]+")

EXTENSIONS: dict[ImageFormat, str] = {
    ImageFormat.JPG: "jpg",
    ImageFormat.PJPG: "jpg",
    ImageFormat.PNG: "png",
    ImageFormat.WEBP: "webp",
    ImageFormat.SVG: "svg",
}


def _embed_svg(data: bytes) -> str:
    return svg_to_data_uri(data.decode("utf-8"))


def _embed_webp(data: bytes) -> str:
    return "data:image/webp;base64," + base64.b64encode(data).decode("ascii")


EMBED_ENCODERS: dict[ImageFormat, Callable[[bytes], str] | None] = {
    ImageFormat.SVG: _embed_svg,
    ImageFormat.WEBP: _embed_webp,
    ImageFormat.JPG: None,
    ImageFormat.PJPG: None,
    ImageFormat.PNG: None,
}


# ---------- Format & acceptance ----------

def can_be_progressive(above_fold: bool, meta: ImageMeta | None) -> bool:
    return above_fold and meta is not None and not meta.has_alpha


def target_format(progressive: bool) -> ImageFormat:
    return ImageFormat.PJPG if progressive else ImageFormat.WEBP


def accept_variant(compressed_size: int, original_size: int, progressive: bool) -> bool:
    # progressive jpg above the fold is kept even when it is bigger
    return compressed_size < original_size or progressive


def output_suffix(path: Path, image_format: ImageFormat) -> str:
    """Extension to append to ``path`` for a variant, empty when it already matches."""
    new_suffix = f".{EXTENSIONS[image_format]}"
    return "" if path.suffix == new_suffix else new_suffix


# ---------- Embedding ----------

def embed_uri(variant: CompressedVariant, embed_size: int) -> str | None:
    if variant.size > embed_size:
        return None
    encoder = EMBED_ENCODERS[variant.format]
    if encoder is None:
        return None
    return encoder(variant.data)


# ---------- Dimensions ----------

def is_numeric(value: str | None) -> bool:
    return value is not None and NUMERIC_RE.match(value) is not None


def parse_dimension(value: str | None) -> int | None:
    if not is_numeric(value):
        return None
    return int(float(value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def viewbox_ratio(viewbox: str | None) -> float | None:
    if not viewbox:
        return None
    parts = VIEWBOX_SPLIT_RE.split(viewbox.strip())
    if len(parts) != 4:
        return None
    try:
        width = float(parts[2])
        height = float(parts[3])
    except ValueError:
        return None
    if width <= 0 or height <= 0:
        return None
    return width / height


def svg_intrinsic_size(root: SvgRoot) -> tuple[float, float]:
    """Size a browser gives an SVG rendered without width/height on the <img>.

    Explicit numeric width and height win. A viewBox alone is fitted into the
    default 300x150 box, by width for wide images (ratio >= 2) and by height
    otherwise. Anything else falls back to 300x150.
    """
    width = parse_dimension(root.width)
    height = parse_dimension(root.height)
    if width is not None and height is not None:
        return float(width), float(height)
    ratio = viewbox_ratio(root.viewbox)
    if root.width is None and root.height is None and ratio:
        if ratio >= 2:
            return float(SVG_DEFAULT_WIDTH), SVG_DEFAULT_WIDTH / ratio
        return SVG_DEFAULT_HEIGHT * ratio, float(SVG_DEFAULT_HEIGHT)
    return float(SVG_DEFAULT_WIDTH), float(SVG_DEFAULT_HEIGHT)


def _true_ratio(meta: ImageMeta, src: str) -> float:
    if not meta.width or not meta.height:
        raise MetadataUnavailable(f'Can\'t get image width and height of "{src}"')
    return meta.width / meta.height


def resolve_dimensions(
    width_attr: str | None,
    height_attr: str | None,
    meta: ImageMeta | None,
    svg: SvgRoot | None = None,
    src: str = "",
) -> tuple[int, int]:
    if meta is None or (meta.width is None and meta.height is None):
        raise MetadataUnavailable(
            f'Can\'t get image meta information of "{src}" - '
            "some optimizations are not possible without this information."
        )
    width = parse_dimension(width_attr)
    height = parse_dimension(height_attr)
    if width is not None and height is not None:
        if height and meta.width and meta.height:
            declared = round(width / height, 1)
            actual = round(meta.width / meta.height, 1)
            if declared != actual:
                logger.debug("aspect ratio %s of %s differs from image ratio %s", declared, src, actual)
        return width, height
    if width is not None:
        new_width, new_height = float(width), width / _true_ratio(meta, src)
    elif height is not None:
        new_width, new_height = height * _true_ratio(meta, src), float(height)
    elif svg is not None:
        new_width, new_height = svg_intrinsic_size(svg)
    else:
        if meta.width is None or meta.height is None:
            raise MetadataUnavailable(f'Can\'t get image width and height of "{src}"')
        new_width, new_height = float(meta.width), float(meta.height)
    return round_half_up(new_width), round_half_up(new_height)


# ---------- Responsive set ----------

def srcset_steps(width: int, height: int, min_width: int, step: int = SRCSET_STEP) -> list[tuple[int, int]]:
    """Downscaled (width, height) pairs, ``step`` px apart, largest first.

    A step is derived as long as the width it is reduced from is still above
    ``min_width``: 1000px with a 640px minimum gives 700 and 400. A zero
    width or height has no ratio to scale by and yields no steps.
    """
    if width <= 0 or height <= 0:
        return []
    ratio = width / height
    steps = []
    previous, current = width, width - step
    while previous > min_width and current > 0:
        steps.append((current, math.trunc(current / ratio)))
        previous, current = current, current - step
    return steps


def srcset_target(src: str, width: int, image_format: ImageFormat) -> str:
    ext = os.path.splitext(src)[1]
    base = src[: -len(ext)] if ext else src
    return f"{base}@{width}w.{EXTENSIONS[image_format]}"


def build_srcset(src: str, width: int, entries: list[tuple[str, int]]) -> str | None:
    if not entries:
        return None
    steps = "".join(f", {target} {step_width}w" for target, step_width in entries)
    return f"{src} {width}w{steps}"
