from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Row-level models: RawRecord (parser output) and ParsedRow (validator output).

Row numbers are spreadsheet row numbers (1-based) so issues can be reported against
the source file.
"""

__all__ = [
    "Severity",
    "RowStatus",
    "RawRecord",
    "ValidationIssue",
    "ParsedRow",
    "ParseResult",
    "derive_status",
]


class Severity(Enum):
    WARNING = "warning"
    ERROR = "error"


class RowStatus(Enum):
    VALID = "valid"
    WARNING = "warning"
    INVALID = "invalid"


@dataclass(frozen=True)
class RawRecord:
    """Literal cell text of one data row, keyed by field key."""
    row_number: int
    values: dict[str, str]


@dataclass(frozen=True)
class ValidationIssue:
    field_key: str
    severity: Severity
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field_key, "severity": self.severity.value, "message": self.message}

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> ValidationIssue:
        return ValidationIssue(
            field_key=raw["field"],
            severity=Severity(raw["severity"]),
            message=raw["message"],
        )


def derive_status(issues: tuple[ValidationIssue, ...] | list[ValidationIssue]) -> RowStatus:
    """Worst severity wins: any error -> invalid, any warning -> warning, else valid."""
    severities = {i.severity for i in issues}
    if Severity.ERROR in severities:
        return RowStatus.INVALID
    if Severity.WARNING in severities:
        return RowStatus.WARNING
    return RowStatus.VALID


@dataclass(frozen=True)
class ParsedRow:
    """Validated row. ``status`` is always derived from ``issues``."""
    row_number: int
    data: dict[str, str]
    issues: tuple[ValidationIssue, ...] = ()

    @property
    def status(self) -> RowStatus:
        return derive_status(self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    @property
    def admission_no(self) -> str:
        return self.data.get("admissionNo", "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "data": dict(self.data),
            "status": self.status.value,
            "issues": [i.to_dict() for i in self.issues],
        }

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> ParsedRow:
        # status in the snapshot is informational; it is re-derived from issues
        return ParsedRow(
            row_number=int(raw["rowNumber"]),
            data={str(k): str(v) for k, v in raw["data"].items()},
            issues=tuple(ValidationIssue.from_dict(i) for i in raw.get("issues", [])),
        )


@dataclass(frozen=True)
class ParseResult:
    """Summary snapshot over a list of rows."""
    total_rows: int
    valid_rows: int
    warning_rows: int
    invalid_rows: int
    rows: list[ParsedRow] = field(default_factory=list)
    file_name: str | None = None

    @staticmethod
    def from_rows(rows: list[ParsedRow], file_name: str | None = None) -> ParseResult:
        counts = {s: 0 for s in RowStatus}
        for r in rows:
            counts[r.status] += 1
        return ParseResult(
            total_rows=len(rows),
            valid_rows=counts[RowStatus.VALID],
            warning_rows=counts[RowStatus.WARNING],
            invalid_rows=counts[RowStatus.INVALID],
            rows=list(rows),
            file_name=file_name,
        )
