from __future__ import annotations

from dataclasses import dataclass, field, fields, is_dataclass, replace
import json
from pathlib import Path
from typing import Any

from .errors import ConfigError


@dataclass(frozen=True)
class JpegOptions:
    quality: int = 75
    mozjpeg: bool = True


@dataclass(frozen=True)
class PngOptions:
    compression_level: int = 9


@dataclass(frozen=True)
class WebpOptions:
    effort: int = 4
    quality: int = 77
    lossless: bool = False


@dataclass(frozen=True)
class ImageConfig:
    embed_size: int = 1500
    srcset_min_width: int = 640
    jpeg: JpegOptions = field(default_factory=JpegOptions)
    png: PngOptions = field(default_factory=PngOptions)
    webp_lossless: WebpOptions = field(default_factory=lambda: WebpOptions(lossless=True))
    webp_lossy: WebpOptions = field(default_factory=WebpOptions)


@dataclass(frozen=True)
class RunOptions:
    root: Path
    nowrite: bool = False
    exclude: str | None = None


FAST_OVERRIDES: dict[str, Any] = {
    "embed_size": 0,
    "srcset_min_width": 16000,
    "jpeg": {"mozjpeg": False},
    "png": {"compression_level": 0},
    "webp_lossless": {"effort": 0},
    "webp_lossy": {"effort": 0},
}


def fast_config(config: ImageConfig | None = None) -> ImageConfig:
    return merge_config(config or ImageConfig(), FAST_OVERRIDES)


def merge_config(base: Any, overrides: dict[str, Any]) -> Any:
    known = {item.name: item for item in fields(base)}
    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            raise ConfigError(f"Unknown option '{key}' in {type(base).__name__}")
        current = getattr(base, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ConfigError(f"Option '{key}' expects an object")
            changes[key] = merge_config(current, value)
        elif isinstance(current, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"Option '{key}' expects true or false")
            changes[key] = value
        elif isinstance(current, int):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"Option '{key}' expects a non-negative integer")
            changes[key] = value
        else:
            changes[key] = value
    return replace(base, **changes)


def load_config(path: Path) -> ImageConfig:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Can't read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    image = data.get("image", {})
    if not isinstance(image, dict):
        raise ConfigError("Option 'image' expects an object")
    return merge_config(ImageConfig(), image)
