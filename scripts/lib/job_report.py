"""
Per-item outcomes and run tallies for the latest_news maintenance jobs.

Workers return an ItemResult instead of raising; the job runner hands each
result to JobSummary.record(), which logs one line per article and keeps the
counters for the final summary.
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

log = logging.getLogger("jobs")


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ItemResult:
    """Tagged outcome of processing one article."""
    outcome: Outcome
    reason: str | None = None
    detail: str | None = None
    value: Any = None

    @classmethod
    def succeeded(cls, detail: str | None = None, value: Any = None) -> "ItemResult":
        return cls(Outcome.SUCCEEDED, None, detail, value)

    @classmethod
    def skipped(cls, reason: str, detail: str | None = None) -> "ItemResult":
        return cls(Outcome.SKIPPED, reason, detail)

    @classmethod
    def failed(cls, reason: str, detail: str | None = None) -> "ItemResult":
        return cls(Outcome.FAILED, reason, detail)


def _short(text: str | None, width: int = 60) -> str:
    if not text:
        return ""
    return text if len(text) <= width else text[:width] + "..."


@dataclass
class JobSummary:
    job: str
    selected: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    reasons: Counter = field(default_factory=Counter)
    interrupted: bool = False
    dry_run: bool = False

    @property
    def processed(self) -> int:
        return self.succeeded + self.skipped + self.failed

    def record(self, item_id: Any, label: str | None, result: ItemResult) -> None:
        """Count one outcome and log it with the article id."""
        position = f"[{self.processed + 1}/{self.selected}]"
        title = _short(label)
        detail = f": {result.detail}" if result.detail else ""

        if result.outcome is Outcome.SUCCEEDED:
            self.succeeded += 1
            log.info("%s ✓ %s %s%s", position, item_id, title, detail)
        elif result.outcome is Outcome.SKIPPED:
            self.skipped += 1
            self.reasons[result.reason or "unknown"] += 1
            log.info("%s ⚠ %s skipped (%s) %s%s", position, item_id, result.reason, title, detail)
        else:
            self.failed += 1
            self.reasons[result.reason or "unknown"] += 1
            log.error("%s ✗ %s failed (%s) %s%s", position, item_id, result.reason, title, detail)

    def to_dict(self) -> dict:
        return {
            "selected": self.selected,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
        }

    def log_summary(self) -> None:
        log.info("=" * 60)
        header = f"SUMMARY: {self.job}"
        if self.dry_run:
            header += " [DRY RUN]"
        if self.interrupted:
            header += " (interrupted)"
        log.info(header)
        log.info("=" * 60)
        log.info("Selected:  %d", self.selected)
        log.info("Succeeded: %d", self.succeeded)
        log.info("Skipped:   %d", self.skipped)
        log.info("Failed:    %d", self.failed)
        for reason, count in self.reasons.most_common():
            log.info("  %s: %d", reason, count)
        if self.processed < self.selected:
            log.info("Not reached: %d", self.selected - self.processed)
