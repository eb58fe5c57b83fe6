from __future__ import annotations

import json
from pathlib import Path

import pytest

from imgpack.config import ImageConfig, fast_config, load_config, merge_config
from imgpack.errors import ConfigError


def test_defaults() -> None:
    config = ImageConfig()
    assert config.embed_size == 1500
    assert config.srcset_min_width == 640
    assert config.jpeg.quality == 75 and config.jpeg.mozjpeg is True
    assert config.png.compression_level == 9
    assert config.webp_lossless.lossless is True
    assert config.webp_lossy.lossless is False
    assert config.webp_lossy.effort == 4 and config.webp_lossy.quality == 77


def test_fast_config_only_overrides_options() -> None:
    config = fast_config()
    assert config.embed_size == 0
    assert config.srcset_min_width == 16000
    assert config.jpeg.mozjpeg is False
    assert config.jpeg.quality == 75
    assert config.png.compression_level == 0
    assert config.webp_lossy.effort == 0
    assert config.webp_lossy.quality == 77


def test_load_config_merges_over_defaults(tmp_path: Path) -> None:
    path = tmp_path / "imgpack.json"
    path.write_text(json.dumps({"image": {"embed_size": 0, "webp_lossy": {"quality": 60}}}), encoding="utf-8")
    config = load_config(path)
    assert config.embed_size == 0
    assert config.webp_lossy.quality == 60
    assert config.webp_lossy.effort == 4
    assert config.srcset_min_width == 640


def test_fast_applies_after_user_config(tmp_path: Path) -> None:
    path = tmp_path / "imgpack.json"
    path.write_text(json.dumps({"image": {"srcset_min_width": 320}}), encoding="utf-8")
    assert fast_config(load_config(path)).srcset_min_width == 16000


@pytest.mark.parametrize(
    "payload",
    [
        {"image": {"embed_sizes": 10}},
        {"image": {"embed_size": -1}},
        {"image": {"embed_size": "big"}},
        {"image": {"jpeg": 80}},
        {"image": {"jpeg": {"mozjpeg": "yes"}}},
        {"image": []},
        [],
    ],
)
def test_invalid_config(tmp_path: Path, payload) -> None:
    path = tmp_path / "imgpack.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_unreadable_config(tmp_path: Path) -> None:
    path = tmp_path / "imgpack.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")


def test_merge_config_is_immutable() -> None:
    base = ImageConfig()
    merged = merge_config(base, {"embed_size": 10})
    assert base.embed_size == 1500
    assert merged.embed_size == 10
