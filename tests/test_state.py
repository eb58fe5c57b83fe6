from __future__ import annotations

from pathlib import Path

from imgpack.config import RunOptions
from imgpack.models import ImageFormat, IssueKind, SummaryEntry
from imgpack.report import format_issues, format_size, format_summary, summarize
from imgpack.state import CanonicalDecision, RunContext


def make_ctx(root: Path, nowrite: bool = False) -> RunContext:
    return RunContext(RunOptions(root=root, nowrite=nowrite))


def test_canonical_compression_is_claimed_once(tmp_path: Path) -> None:
    ctx = make_ctx(tmp_path)
    path = tmp_path / "a.png"
    assert ctx.claim_compression(path) is True
    assert ctx.claim_compression(path) is False
    assert ctx.canonical_decision(path) is None
    decision = CanonicalDecision(ImageFormat.WEBP, ".webp")
    ctx.record_decision(path, decision)
    assert ctx.canonical_decision(path) == decision


def test_output_is_claimed_once(tmp_path: Path) -> None:
    ctx = make_ctx(tmp_path)
    path = tmp_path / "a@700w.webp"
    assert ctx.claim_output(path) is True
    assert ctx.claim_output(path) is False


def test_write_output(tmp_path: Path) -> None:
    ctx = make_ctx(tmp_path)
    target = tmp_path / "img" / "a.webp"
    ctx.write_output(target, b"data")
    assert target.read_bytes() == b"data"
    assert not (tmp_path / "img" / "a.webp.tmp").exists()


def test_write_output_dry_run(tmp_path: Path) -> None:
    ctx = make_ctx(tmp_path, nowrite=True)
    target = tmp_path / "a.webp"
    ctx.write_output(target, b"data")
    assert not target.exists()


def test_issues_are_grouped_by_file(tmp_path: Path) -> None:
    ctx = make_ctx(tmp_path)
    ctx.report_issue("a.html", IssueKind.A11Y, "missing alt")
    ctx.report_issue("a.html", IssueKind.INVALID, "bad loading")
    ctx.report_issue("b.html", IssueKind.WARN, "missing src")
    assert ctx.issue_count == 3
    assert [issue.kind for issue in ctx.issues["a.html"]] == [IssueKind.A11Y, IssueKind.INVALID]
    assert format_issues(ctx) == [
        "a.html",
        "  [a11y] missing alt",
        "  [invalid] bad loading",
        "b.html",
        "  [warn] missing src",
    ]


def test_summarize_groups_by_action() -> None:
    rows = summarize(
        [
            SummaryEntry("png->webp", 1000, 400),
            SummaryEntry("png->webp", 3000, 1000),
            SummaryEntry("webp->embed", 1000, 400),
        ]
    )
    assert [(row.action, row.count, row.original_size, row.compressed_size) for row in rows] == [
        ("png->webp", 2, 4000, 1400),
        ("webp->embed", 1, 1000, 400),
    ]
    assert rows[0].gain == 1 - 1400 / 4000


def test_format_summary(tmp_path: Path) -> None:
    ctx = make_ctx(tmp_path)
    assert format_summary(ctx) == ["No image was compressed."]
    ctx.report_summary("png->webp", 2048, 1024)
    lines = format_summary(ctx)
    assert lines[1].startswith("png->webp")
    assert "50.0%" in lines[1]
    assert lines[-1].startswith("total")


def test_format_size() -> None:
    assert format_size(512) == "512 B"
    assert format_size(2048) == "2.0 KB"
    assert format_size(3 * 1024 * 1024) == "3.0 MB"
