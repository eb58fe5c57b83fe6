from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from threading import Lock

from .config import ImageConfig, RunOptions
from .models import ImageFormat, Issue, IssueKind, SummaryEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CanonicalDecision:
    target: ImageFormat
    suffix: str | None


@dataclass
class RunContext:
    options: RunOptions
    config: ImageConfig = field(default_factory=ImageConfig)
    compressed: dict[Path, CanonicalDecision | None] = field(default_factory=dict)
    generated: set[Path] = field(default_factory=set)
    issues: dict[str, list[Issue]] = field(default_factory=dict)
    summary: list[SummaryEntry] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock, repr=False)

    @property
    def root(self) -> Path:
        return self.options.root

    @property
    def nowrite(self) -> bool:
        return self.options.nowrite

    def claim_compression(self, path: Path) -> bool:
        """Reserve the canonical compression of ``path``; False if already reserved."""
        with self._lock:
            if path in self.compressed:
                return False
            self.compressed[path] = None
            return True

    def record_decision(self, path: Path, decision: CanonicalDecision) -> None:
        with self._lock:
            self.compressed[path] = decision

    def canonical_decision(self, path: Path) -> CanonicalDecision | None:
        with self._lock:
            return self.compressed.get(path)

    def claim_output(self, path: Path) -> bool:
        with self._lock:
            if path in self.generated:
                return False
            self.generated.add(path)
            return True

    def write_output(self, path: Path, data: bytes) -> None:
        if self.nowrite:
            logger.debug("dry-run: skip writing %s", path)
            return
        write_bytes_atomic(path, data)

    def report_issue(self, file: str, kind: IssueKind, message: str) -> None:
        logger.warning("%s [%s] %s", file, kind.value, message)
        self.issues.setdefault(file, []).append(Issue(kind, message))

    def report_summary(self, action: str, original_size: int, compressed_size: int) -> None:
        self.summary.append(SummaryEntry(action, original_size, compressed_size))

    @property
    def issue_count(self) -> int:
        return sum(len(items) for items in self.issues.values())


def write_bytes_atomic(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    with open(tmp, "wb") as f:
        f.write(data)
    os.replace(tmp, target)
