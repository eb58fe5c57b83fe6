from __future__ import annotations

from dataclasses import dataclass

from .models import SummaryEntry
from .state import RunContext


@dataclass(frozen=True)
class SummaryRow:
    action: str
    count: int
    original_size: int
    compressed_size: int

    @property
    def gain(self) -> float:
        if not self.original_size:
            return 0.0
        return 1 - (self.compressed_size / self.original_size)


def summarize(entries: list[SummaryEntry]) -> list[SummaryRow]:
    totals: dict[str, list[int]] = {}
    for entry in entries:
        row = totals.setdefault(entry.action, [0, 0, 0])
        row[0] += 1
        row[1] += entry.original_size
        row[2] += entry.compressed_size
    return [
        SummaryRow(action, count, original, compressed)
        for action, (count, original, compressed) in sorted(totals.items())
    ]


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def format_issues(ctx: RunContext) -> list[str]:
    lines = []
    for file, issues in ctx.issues.items():
        lines.append(file)
        for issue in issues:
            lines.append(f"  [{issue.kind.value}] {issue.message}")
    return lines


def format_summary(ctx: RunContext) -> list[str]:
    rows = summarize(ctx.summary)
    if not rows:
        return ["No image was compressed."]
    lines = [f"{'Action':<16}{'Count':>7}{'Original':>12}{'Compressed':>12}{'Gain':>8}"]
    for row in rows:
        lines.append(
            f"{row.action:<16}{row.count:>7}{format_size(row.original_size):>12}"
            f"{format_size(row.compressed_size):>12}{row.gain:>8.1%}"
        )
    total_before = sum(row.original_size for row in rows)
    total_after = sum(row.compressed_size for row in rows)
    total = SummaryRow("total", sum(row.count for row in rows), total_before, total_after)
    lines.append(
        f"{total.action:<16}{total.count:>7}{format_size(total_before):>12}"
        f"{format_size(total_after):>12}{total.gain:>8.1%}"
    )
    return lines
