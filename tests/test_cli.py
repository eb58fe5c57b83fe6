from __future__ import annotations

import json
from pathlib import Path

from imgpack.cli import main


def test_cli_runs_and_reports(site: Path, write_html, capsys) -> None:
    write_html(site, "index.html", '<img src="https://example.com/a.png">')
    assert main([str(site)]) == 0
    out = capsys.readouterr().out
    assert "Processed 1 HTML file(s)" in out
    assert "[a11y]" in out
    assert 'alt=""' in (site / "index.html").read_text(encoding="utf-8")


def test_cli_fail_flag(site: Path, write_html) -> None:
    write_html(site, "index.html", '<img src="https://example.com/a.png">')
    assert main([str(site), "--fail", "--nowrite"]) == 1


def test_cli_fail_flag_without_issues(site: Path, write_html) -> None:
    write_html(site, "index.html", '<img src="https://example.com/a.png" alt="">')
    assert main([str(site), "--fail"]) == 0


def test_cli_nowrite(site: Path, write_html) -> None:
    page = write_html(site, "index.html", '<img src="https://example.com/a.png">')
    before = page.read_text(encoding="utf-8")
    assert main([str(site), "--nowrite"]) == 0
    assert page.read_text(encoding="utf-8") == before


def test_cli_missing_directory(tmp_path: Path) -> None:
    assert main([str(tmp_path / "nope")]) == 2


def test_cli_bad_config(site: Path, tmp_path: Path) -> None:
    config = tmp_path / "bad.json"
    config.write_text(json.dumps({"image": {"unknown": 1}}), encoding="utf-8")
    assert main([str(site), "--config", str(config)]) == 2


def test_cli_fast_skips_srcset(site: Path, write_html, make_image, fake_codec, read_images) -> None:
    make_image(site / "img" / "photo.png", size=(2000, 1000))
    write_html(site, "index.html", '<img src="img/photo.png" alt="">')
    assert main([str(site), "--fast"]) == 0
    (img,) = read_images(site / "index.html")
    assert "srcset" not in img.attrs
    assert fake_codec.resize_calls == []
