from __future__ import annotations

from dataclasses import dataclass, field

from ..errors import CommitErrorKind

"""Commit outcome models.

CommitOutcome is per row; CommitReport aggregates a batch. Outcomes are never
silently discarded: failed rows keep their reason so they can be retried alone.
"""

__all__ = [
    "CommitOutcome",
    "CommitReport",
]


@dataclass(frozen=True)
class CommitOutcome:
    row_number: int
    success: bool
    admission_no: str = ""
    created_id: str | None = None
    error: str | None = None
    error_kind: CommitErrorKind | None = None
    retryable: bool = False
    documents: dict[str, str] = field(default_factory=dict)  # slot id -> stored url


@dataclass(frozen=True)
class CommitReport:
    outcomes: list[CommitOutcome]
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def failures(self) -> list[CommitOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def retryable_rows(self) -> list[int]:
        return [o.row_number for o in self.outcomes if not o.success and o.retryable]
