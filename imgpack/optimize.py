from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Callable

from bs4 import BeautifulSoup, Tag

from .codec import compress_image
from .decisions import (
    accept_variant,
    build_srcset,
    can_be_progressive,
    embed_uri,
    output_suffix,
    resolve_dimensions,
    srcset_steps,
    srcset_target,
    target_format,
)
from .models import CompressRequest, CompressedVariant, ImageFormat, IssueKind, iter_html_files
from .resource import Resource, is_local, load_resource, translate_src
from .state import CanonicalDecision, RunContext, write_bytes_atomic

logger = logging.getLogger(__name__)

FOLD_TAG = "the-fold"
ProgressCallback = Callable[[int, int, str], None]


@dataclass
class Dispatch:
    target: ImageFormat
    variant: CompressedVariant | None = None


def optimize(ctx: RunContext, progress: ProgressCallback | None = None) -> list[Path]:
    files = iter_html_files(ctx.root, ctx.options.exclude)
    total = len(files)
    for index, file in enumerate(files, start=1):
        if progress is not None:
            progress(index, total, file.as_posix())
        analyse(ctx, file)
    return files


def read_html(path: Path) -> tuple[str, str]:
    raw = path.read_bytes()
    try:
        return raw.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        return raw.decode("latin-1"), "latin-1"


def analyse(ctx: RunContext, file: Path) -> None:
    name = file.as_posix()
    logger.info("▶ %s", name)
    path = ctx.root / file
    text, encoding = read_html(path)
    soup = BeautifulSoup(text, "html.parser")
    fold = get_the_fold(soup)

    images = soup.find_all("img")
    for index, img in enumerate(images, start=1):
        logger.debug("<img> [%d/%d] %s", index, len(images), img.get("src"))
        process_image(ctx, file, img, is_above_fold(img, fold))

    issues = ctx.issues.get(name)
    if issues:
        logger.info("  %d issue%s", len(issues), "s" if len(issues) > 1 else "")

    for marker in soup.find_all(FOLD_TAG):
        marker.unwrap()

    if not ctx.nowrite:
        write_bytes_atomic(path, soup.encode(encoding))


def source_offset(tag: Tag) -> tuple[int, int]:
    return (tag.sourceline or 0, tag.sourcepos or 0)


def get_the_fold(soup: BeautifulSoup) -> tuple[int, int] | None:
    marker = soup.find(FOLD_TAG)
    if marker is None:
        return None
    return source_offset(marker)


def is_above_fold(img: Tag, fold: tuple[int, int] | None) -> bool:
    return fold is not None and source_offset(img) < fold


def process_image(ctx: RunContext, file: Path, img: Tag, above_fold: bool) -> None:
    name = file.as_posix()
    try:
        src = normalize_attributes(ctx, name, img, above_fold)
        if src is None:
            return

        resource = load_resource(ctx.root, file, src)
        if resource is None:
            ctx.report_issue(name, IssueKind.ERRO, f'Can\'t find img on disk src="{src}"')
            return

        dispatch = compress_base(ctx, img, resource, above_fold)

        embedded = False
        if dispatch.variant is not None:
            embedded = embed_image(ctx, img, resource, dispatch.variant)

        width, height = set_image_size(img, resource)

        if embedded or resource.is_svg:
            return
        if img.get("srcset"):
            # author-provided srcset is left untouched
            return
        generate_srcset(ctx, file, img, resource, src, dispatch.target, width, height)
    except Exception as exc:
        message = str(exc) or f"Unexpected error while processing image: {exc!r}"
        ctx.report_issue(name, IssueKind.ERRO, message)


def normalize_attributes(ctx: RunContext, name: str, img: Tag, above_fold: bool) -> str | None:
    """Apply the src/alt/loading/decoding rules; return the local src to process, if any."""
    src = img.get("src")
    if not src:
        ctx.report_issue(name, IssueKind.WARN, "Missing [src] on img - processing skipped.")
        return None

    if "alt" not in img.attrs:
        ctx.report_issue(
            name, IssueKind.A11Y, f'Missing [alt] on img src="{src}" - Adding alt="" meanwhile.'
        )
        img["alt"] = ""

    if src.startswith("data:"):
        return None

    loading = img.get("loading")
    if above_fold:
        img.attrs.pop("loading", None)
        img["fetchpriority"] = "high"
    elif loading is None:
        img["loading"] = "lazy"
    elif loading == "eager":
        del img["loading"]
    elif loading != "lazy":
        ctx.report_issue(name, IssueKind.INVALID, f'Invalid [loading]="{loading}" on img src="{src}"')

    img["decoding"] = "async"

    if not is_local(src):
        return None
    return src


def compress_base(ctx: RunContext, img: Tag, resource: Resource, above_fold: bool) -> Dispatch:
    progressive = can_be_progressive(above_fold, resource.meta)
    target = target_format(progressive)

    if not ctx.claim_compression(resource.path):
        decision = ctx.canonical_decision(resource.path)
        if decision is None:
            return Dispatch(target)
        if decision.suffix is not None:
            img["src"] = img["src"] + decision.suffix
        return Dispatch(decision.target)

    variant = compress_image(resource.data, CompressRequest(target), ctx.config)
    original_size = resource.length
    if variant is None or not accept_variant(variant.size, original_size, progressive):
        ctx.record_decision(resource.path, CanonicalDecision(target, None))
        return Dispatch(target)

    suffix = output_suffix(resource.path, variant.format)
    output = resource.path.with_name(resource.path.name + suffix)
    ctx.claim_output(output)
    ctx.write_output(output, variant.data)
    ctx.record_decision(resource.path, CanonicalDecision(target, suffix))
    ctx.report_summary(f"{resource.ext}->{variant.format.value}", original_size, variant.size)
    img["src"] = img["src"] + suffix
    return Dispatch(target, variant)


def embed_image(ctx: RunContext, img: Tag, resource: Resource, variant: CompressedVariant) -> bool:
    datauri = embed_uri(variant, ctx.config.embed_size)
    if datauri is None:
        return False
    img["src"] = datauri
    img.attrs.pop("loading", None)
    img.attrs.pop("decoding", None)
    ctx.report_summary(f"{variant.format.value}->embed", resource.length, variant.size)
    return True


def set_image_size(img: Tag, resource: Resource) -> tuple[int, int]:
    svg = resource.svg_root() if resource.is_svg else None
    width, height = resolve_dimensions(
        img.get("width"), img.get("height"), resource.meta, svg, resource.src
    )
    img["width"] = str(width)
    img["height"] = str(height)
    return width, height


def generate_srcset(
    ctx: RunContext,
    file: Path,
    img: Tag,
    resource: Resource,
    src: str,
    target: ImageFormat,
    width: int,
    height: int,
) -> None:
    entries: list[tuple[str, int]] = []
    for step_width, step_height in srcset_steps(width, height, ctx.config.srcset_min_width):
        step_src = srcset_target(src, step_width, target)
        output = translate_src(ctx.root, file.parent, step_src)
        if ctx.claim_output(output):
            variant = compress_image(
                resource.data, CompressRequest(target, (step_width, step_height)), ctx.config
            )
            if variant is not None:
                ctx.write_output(output, variant.data)
        entries.append((step_src, step_width))
    srcset = build_srcset(img["src"], width, entries)
    if srcset is not None:
        img["srcset"] = srcset
