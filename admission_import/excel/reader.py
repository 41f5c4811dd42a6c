from __future__ import annotations

import csv
import io
import logging
import math
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import IO, Any

import pandas as pd
import xlrd
from openpyxl.utils.exceptions import InvalidFileException

from ..errors import (
    EmptySheetError,
    FileUnreadableError,
    ParseError,
    SchemaMismatchError,
    SizeExceededError,
    UnsupportedFormatError,
)
from ..models.config_models import LimitsConfig
from ..models.parsed_row import ParseResult, RawRecord
from ..schema.registry import DEFAULT_REGISTRY, SchemaRegistry
from ..services.validator import validate_row

"""Spreadsheet parser: uploaded file -> RawRecords -> validated ParseResult.

- The whole file is read into memory first; no handle is kept after a failure.
- Header row: the row (within the first HEADER_SCAN_ROWS) matching the most field
  labels. Without any match, columns map by position in registry order.
- Cells are converted to text (dates ISO, integral floats without ".0", booleans
  Yes/No). Literal "NA" and similar strings are kept as text.
- Row numbers are spreadsheet row numbers (1-based).
"""

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "HEADER_SCAN_ROWS",
    "PREFERRED_SHEET",
    "read_source",
    "load_frame",
    "cell_text",
    "extract_records",
    "parse_import_file",
]

logger = logging.getLogger(__name__)

EXCEL_ENGINES = {".xlsx": "openpyxl", ".xlsm": "openpyxl", ".xls": "xlrd"}
TEXT_SEPARATORS = {".csv": ",", ".tsv": "\t", ".txt": None}  # None -> guessed
SUPPORTED_EXTENSIONS = frozenset(EXCEL_ENGINES) | frozenset(TEXT_SEPARATORS)
HEADER_SCAN_ROWS = 10
PREFERRED_SHEET = "Students"
TEXT_SEPARATOR_CANDIDATES = (",", "\t", ";", "|")

_EXCEL_READ_ERRORS = (ValueError, KeyError, OSError, zipfile.BadZipFile, xlrd.XLRDError, InvalidFileException)


def read_source(source: Path | IO[bytes], *, max_bytes: int, name: str | None = None) -> tuple[str, bytes]:
    """Read the complete upload into memory, enforcing the size limit first.

    Returns (file name, content). OSError (locked file, placeholder still syncing)
    becomes the retryable FileUnreadableError.
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        name = name or path.name
        try:
            size = path.stat().st_size
            if size > max_bytes:
                raise SizeExceededError(name, size, max_bytes)
            with path.open("rb") as fh:
                content = fh.read()
        except OSError as e:
            raise FileUnreadableError(f"cannot read {name}: {e}") from e
    else:
        name = name or Path(getattr(source, "name", "upload")).name
        try:
            content = source.read(max_bytes + 1)
        except OSError as e:
            raise FileUnreadableError(f"cannot read {name}: {e}") from e
        if len(content) > max_bytes:
            raise SizeExceededError(name, len(content), max_bytes)
    return name, content


def _pick_sheet(sheet_names: list[Any]) -> Any:
    for s in sheet_names:
        if str(s).strip().casefold() == PREFERRED_SHEET.casefold():
            return s
    return sheet_names[0]


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("cp1252", errors="replace")


def _guess_separator(text: str) -> str:
    """Candidate with the most fields on any of the leading lines; tab when none occurs."""
    lines = text.splitlines()[:HEADER_SCAN_ROWS + 1]
    best = max(TEXT_SEPARATOR_CANDIDATES, key=lambda d: max((line.count(d) for line in lines), default=0))
    return best if any(best in line for line in lines) else "\t"


def _load_delimited(name: str, text: str, sep: str | None) -> pd.DataFrame:
    # title lines above the header have fewer fields, so columns are sized by the widest record
    if sep is None:
        sep = _guess_separator(text)
    try:
        width = max((len(r) for r in csv.reader(io.StringIO(text), delimiter=sep)), default=0)
    except csv.Error as e:
        raise ParseError(f"{name} could not be split into columns: {e}") from e
    if width == 0:
        raise EmptySheetError(f"{name} contains no data")
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=range(width),
            dtype=str,
            sep=sep,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError as e:
        raise EmptySheetError(f"{name} contains no data") from e
    except (pd.errors.ParserError, ValueError) as e:
        raise ParseError(f"{name} could not be split into columns: {e}") from e
    return df


def load_frame(name: str, content: bytes) -> pd.DataFrame:
    """Raw cell grid (header=None, dtype=object) of the sheet to import."""
    ext = Path(name).suffix.lower()
    if ext in EXCEL_ENGINES:
        try:
            xls = pd.ExcelFile(io.BytesIO(content), engine=EXCEL_ENGINES[ext])
            sheet = _pick_sheet(xls.sheet_names)
            return xls.parse(sheet, header=None, dtype=object)
        except _EXCEL_READ_ERRORS as e:
            raise FileUnreadableError(f"{name} is corrupt or not a valid {ext} workbook: {e}") from e
    if ext in TEXT_SEPARATORS:
        return _load_delimited(name, _decode(content), TEXT_SEPARATORS[ext])
    raise UnsupportedFormatError(
        f"{name}: unsupported file type {ext or '(none)'}; expected one of {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
    )


def cell_text(value: Any) -> str:
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _detect_header(grid: list[list[str]], registry: SchemaRegistry) -> tuple[int | None, dict[int, str]]:
    best_index: int | None = None
    best_map: dict[int, str] = {}
    for i, cells in enumerate(grid[:HEADER_SCAN_ROWS]):
        mapping: dict[int, str] = {}
        for col, cell in enumerate(cells):
            key = registry.key_for_header(cell)
            if key is not None and key not in mapping.values():
                mapping[col] = key
        if len(mapping) > len(best_map):
            best_index, best_map = i, mapping
    return best_index, best_map


def extract_records(df: pd.DataFrame, registry: SchemaRegistry = DEFAULT_REGISTRY) -> list[RawRecord]:
    """Map columns to fields and split the grid into RawRecords."""
    grid = [[cell_text(v) for v in row] for row in df.itertuples(index=False, name=None)]
    header_index, mapping = _detect_header(grid, registry)
    if header_index is None:
        width = max((len(r) for r in grid), default=0)
        mapping = {i: k for i, k in enumerate(registry.keys[:width])}
        data_start = 0
        logger.warning("no header row recognised; mapping %d columns by position", len(mapping))
    else:
        data_start = header_index + 1
        logger.debug("header row %d mapped %d columns", header_index + 1, len(mapping))

    missing = [registry[k].label for k in registry.required_keys() if k not in mapping.values()]
    if missing:
        raise SchemaMismatchError(missing)

    records: list[RawRecord] = []
    for i in range(data_start, len(grid)):
        cells = grid[i]
        values = {key: (cells[col] if col < len(cells) else "") for col, key in mapping.items()}
        if not any(values.values()):
            continue
        records.append(RawRecord(row_number=i + 1, values=values))
    return records


def parse_import_file(
    source: Path | IO[bytes],
    *,
    max_bytes: int = LimitsConfig().max_spreadsheet_bytes,
    registry: SchemaRegistry = DEFAULT_REGISTRY,
    name: str | None = None,
) -> ParseResult:
    """Parse and validate an uploaded spreadsheet.

    Raises:
        SizeExceededError: before parsing, when the file is over ``max_bytes``
        ParseError: unsupported format, unreadable file, no data rows, header mismatch
    """
    name, content = read_source(source, max_bytes=max_bytes, name=name)
    df = load_frame(name, content)
    if df.empty:
        raise EmptySheetError(f"{name} contains no data")
    records = extract_records(df, registry)
    if not records:
        raise EmptySheetError(f"{name} has a header but no data rows")
    rows = [validate_row(r, registry) for r in records]
    result = ParseResult.from_rows(rows, file_name=name)
    logger.info(
        "parsed %s: rows=%d valid=%d warning=%d invalid=%d",
        name, result.total_rows, result.valid_rows, result.warning_rows, result.invalid_rows,
    )
    return result
