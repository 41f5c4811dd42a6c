from __future__ import annotations

import io
from datetime import date, datetime
from pathlib import Path

import pandas as pd
import pytest

from admission_import.errors import (
    EmptySheetError,
    FileUnreadableError,
    ParseError,
    SchemaMismatchError,
    SizeExceededError,
    UnsupportedFormatError,
)
from admission_import.excel.reader import cell_text, extract_records, parse_import_file, read_source
from admission_import.models.parsed_row import RowStatus
from admission_import.schema.registry import DEFAULT_REGISTRY


def test_parse_xlsx_rows_get_spreadsheet_numbers(make_workbook, valid_values):
    second = dict(valid_values, admissionNo="STU-2025-00002", firstName="")
    path = make_workbook([valid_values, second])
    result = parse_import_file(path)
    assert result.total_rows == 2
    assert result.valid_rows == 1
    assert result.invalid_rows == 1
    assert [r.row_number for r in result.rows] == [2, 3]
    assert result.file_name == "batch.xlsx"
    assert result.rows[0].data["fatherMobile"] == "9876543210"


def test_header_found_below_title_rows(make_workbook, valid_values):
    path = make_workbook([valid_values], leading_rows=[["Admission batch March"], []])
    result = parse_import_file(path)
    assert result.rows[0].row_number == 4
    assert result.rows[0].status is RowStatus.VALID


def test_blank_rows_skipped_without_renumbering(make_workbook, valid_values):
    blank = {}
    third = dict(valid_values, admissionNo="STU-2025-00004")
    path = make_workbook([valid_values, blank, third])
    result = parse_import_file(path)
    assert [r.row_number for r in result.rows] == [2, 4]


def test_prefers_students_sheet(tmp_path: Path, valid_values):
    path = tmp_path / "multi.xlsx"
    labels = [f.label for f in DEFAULT_REGISTRY.fields]
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame([["read me"]]).to_excel(writer, sheet_name="Instructions", header=False, index=False)
        pd.DataFrame([[valid_values.get(f.key, "") for f in DEFAULT_REGISTRY.fields]], columns=labels).to_excel(
            writer, sheet_name="Students", index=False
        )
    result = parse_import_file(path)
    assert result.total_rows == 1


def test_csv_keeps_literal_na_text(tmp_path: Path, valid_values):
    labels = [f.label for f in DEFAULT_REGISTRY.fields]
    df = pd.DataFrame([[valid_values.get(f.key, "") for f in DEFAULT_REGISTRY.fields]], columns=labels)
    df["Caste"] = "NA"
    path = tmp_path / "batch.csv"
    df.to_csv(path, index=False)
    result = parse_import_file(path)
    assert result.rows[0].data["caste"] == "NA"
    assert result.rows[0].status is RowStatus.VALID


def test_unknown_columns_ignored(tmp_path: Path, valid_values):
    labels = [f.label for f in DEFAULT_REGISTRY.fields] + ["Bus Route"]
    df = pd.DataFrame([[valid_values.get(f.key, "") for f in DEFAULT_REGISTRY.fields] + ["R7"]], columns=labels)
    path = tmp_path / "batch.tsv"
    df.to_csv(path, index=False, sep="\t")
    result = parse_import_file(path)
    assert "Bus Route" not in result.rows[0].data
    assert result.valid_rows == 1


def _delimited_with_title(tmp_path: Path, valid_values, name: str, sep: str) -> Path:
    labels = [f.label for f in DEFAULT_REGISTRY.fields]
    df = pd.DataFrame([[valid_values.get(f.key, "") for f in DEFAULT_REGISTRY.fields]], columns=labels)
    path = tmp_path / name
    path.write_text("Student admissions 2025\n" + df.to_csv(index=False, sep=sep), encoding="utf-8")
    return path


@pytest.mark.parametrize("name,sep", [("batch.csv", ","), ("batch.tsv", "\t"), ("batch.txt", ";")])
def test_delimited_header_found_below_title_line(tmp_path: Path, valid_values, name, sep):
    path = _delimited_with_title(tmp_path, valid_values, name, sep)
    result = parse_import_file(path)
    assert result.total_rows == 1
    assert result.rows[0].row_number == 3
    assert result.rows[0].status is RowStatus.VALID
    assert result.rows[0].data["firstName"] == valid_values["firstName"]


def test_unsplittable_csv_is_not_retryable(tmp_path: Path):
    path = tmp_path / "batch.csv"
    # one field above the csv module's field size limit
    path.write_text("Admission No,First Name\n" + "x" * 200_000 + ",Asha\n", encoding="utf-8")
    with pytest.raises(ParseError) as e:
        parse_import_file(path)
    assert not isinstance(e.value, FileUnreadableError)
    assert e.value.retryable is False


def test_missing_required_column_is_schema_mismatch(make_workbook, valid_values):
    keys = [k for k in DEFAULT_REGISTRY.keys if k != "lastName"]
    path = make_workbook([valid_values], headers=keys)
    with pytest.raises(SchemaMismatchError) as e:
        parse_import_file(path)
    assert e.value.missing == ["Last Name *"]


def test_positional_fallback_without_headers(valid_values):
    df = pd.DataFrame([[valid_values.get(k, "") for k in DEFAULT_REGISTRY.keys]], dtype=object)
    records = extract_records(df)
    assert len(records) == 1
    assert records[0].row_number == 1
    assert records[0].values["firstName"] == "Aarav"


def test_header_only_sheet_is_empty(make_workbook):
    with pytest.raises(EmptySheetError):
        parse_import_file(make_workbook([]))


def test_size_checked_before_parsing(make_workbook, valid_values):
    path = make_workbook([valid_values])
    with pytest.raises(SizeExceededError) as e:
        parse_import_file(path, max_bytes=10)
    assert e.value.limit == 10


def test_size_checked_for_binary_handles():
    with pytest.raises(SizeExceededError):
        read_source(io.BytesIO(b"x" * 20), max_bytes=10, name="upload.csv")


def test_unsupported_extension(tmp_path: Path):
    path = tmp_path / "batch.pdf"
    path.write_bytes(b"%PDF-1.4")
    with pytest.raises(UnsupportedFormatError):
        parse_import_file(path)


def test_corrupt_workbook_is_retryable(tmp_path: Path):
    path = tmp_path / "batch.xlsx"
    path.write_bytes(b"not really a zip file")
    with pytest.raises(FileUnreadableError) as e:
        parse_import_file(path)
    assert e.value.retryable is True


def test_missing_file_is_unreadable(tmp_path: Path):
    with pytest.raises(FileUnreadableError):
        parse_import_file(tmp_path / "gone.xlsx")


@pytest.mark.parametrize("value,expected", [
    (None, ""),
    (float("nan"), ""),
    (9876543210.0, "9876543210"),
    (12, "12"),
    (True, "Yes"),
    (False, "No"),
    (datetime(2015, 4, 12, 0, 0), "2015-04-12"),
    (pd.Timestamp("2015-04-12"), "2015-04-12"),
    (date(2015, 4, 12), "2015-04-12"),
    ("  Aarav ", "Aarav"),
    (pd.NaT, ""),
])
def test_cell_text(value, expected):
    assert cell_text(value) == expected
