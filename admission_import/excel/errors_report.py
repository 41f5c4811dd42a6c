from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from ..models.parsed_row import ParsedRow, RowStatus
from ..schema.registry import DEFAULT_REGISTRY, SchemaRegistry

"""Errors workbook: rows with problems, their issues and their data.

Columns: Row Number, Status, Errors, Warnings, then one column per field (labels).
"""

__all__ = [
    "REPORT_SHEET",
    "error_report_frame",
    "write_error_report",
]

logger = logging.getLogger(__name__)

REPORT_SHEET = "Errors"


def _issue_text(row: ParsedRow, errors: bool) -> str:
    issues = row.errors if errors else row.warnings
    return "; ".join(f"{i.field_key}: {i.message}" for i in issues)


def error_report_frame(rows: list[ParsedRow], registry: SchemaRegistry = DEFAULT_REGISTRY) -> pd.DataFrame:
    records = []
    for r in rows:
        if r.status is RowStatus.VALID:
            continue
        rec: dict[str, object] = {
            "Row Number": r.row_number,
            "Status": r.status.value.upper(),
            "Errors": _issue_text(r, errors=True),
            "Warnings": _issue_text(r, errors=False),
        }
        for spec in registry.fields:
            rec[spec.label] = r.data.get(spec.key, "")
        records.append(rec)
    columns = ["Row Number", "Status", "Errors", "Warnings"] + [f.label for f in registry.fields]
    return pd.DataFrame.from_records(records, columns=columns)


def write_error_report(
    rows: list[ParsedRow], path: Path, registry: SchemaRegistry = DEFAULT_REGISTRY
) -> int:
    """Write the report to ``path`` (.xlsx). Returns the number of rows written."""
    df = error_report_frame(rows, registry)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_excel(path, sheet_name=REPORT_SHEET, index=False, engine="openpyxl")
    logger.info("error report: %d rows -> %s", len(df), path)
    return len(df)
