from __future__ import annotations

from ..models.commit_outcome import CommitReport
from ..models.parsed_row import ParseResult

"""SUMMARY line rendering for the CLI.

Formats:
SUMMARY file={name} rows={total} valid={valid} warning={warning} invalid={invalid}
SUMMARY committed={ok}/{total} failed={failed} retryable={retryable} elapsed_sec={elapsed}
"""

__all__ = [
    "format_seconds",
    "render_parse_summary",
    "render_commit_summary",
]


def format_seconds(value: float) -> str:
    """Render seconds without scientific notation or trailing zeros."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.2f}".rstrip("0").rstrip(".")


def render_parse_summary(result: ParseResult) -> str:
    """Render a SUMMARY line for a parse or the current session state.

    Examples:
        >>> render_parse_summary(ParseResult(3, 1, 1, 1, [], "batch.xlsx"))
        'SUMMARY file=batch.xlsx rows=3 valid=1 warning=1 invalid=1'
    """
    return (
        f"SUMMARY file={result.file_name or '-'} "
        f"rows={result.total_rows} "
        f"valid={result.valid_rows} "
        f"warning={result.warning_rows} "
        f"invalid={result.invalid_rows}"
    )


def render_commit_summary(report: CommitReport) -> str:
    total = len(report.outcomes)
    return (
        f"SUMMARY committed={report.succeeded}/{total} "
        f"failed={report.failed} "
        f"retryable={len(report.retryable_rows)} "
        f"elapsed_sec={format_seconds(report.elapsed_seconds)}"
    )
