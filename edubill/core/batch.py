"""
Outcome counters for the periodic billing batches.
"""

from __future__ import annotations

from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import field


@dataclass
class BatchResult:
    """
    Per-row tally for one batch run.

    ``processed`` counts every row the batch looked at, so
    ``processed == succeeded + failed + skipped`` always holds.
    """

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def record_success(self) -> None:
        self.processed += 1
        self.succeeded += 1

    def record_skip(self) -> None:
        self.processed += 1
        self.skipped += 1

    def record_failure(self, key, exc: Exception) -> None:
        self.processed += 1
        self.failed += 1
        self.errors.append(f"{key}: {exc}")

    def merge(self, other: BatchResult) -> BatchResult:
        return BatchResult(
            processed=self.processed + other.processed,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
        )

    def as_dict(self) -> dict:
        return asdict(self)
