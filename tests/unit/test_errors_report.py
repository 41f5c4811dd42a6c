from __future__ import annotations

from pathlib import Path

import pandas as pd

from admission_import.excel.errors_report import REPORT_SHEET, error_report_frame, write_error_report


def test_error_report_frame_skips_valid_rows(make_row):
    rows = [make_row(2), make_row(3, firstName=""), make_row(4, bloodGroup="Z+")]
    df = error_report_frame(rows)

    assert list(df.columns[:4]) == ["Row Number", "Status", "Errors", "Warnings"]
    assert "First Name *" in df.columns
    assert df["Row Number"].tolist() == [3, 4]
    assert df["Status"].tolist() == ["INVALID", "WARNING"]
    assert df.loc[0, "Errors"].startswith("firstName: ")
    assert df.loc[0, "Warnings"] == ""
    assert df.loc[1, "Warnings"].startswith("bloodGroup: ")
    assert df.loc[1, "Blood Group"] == "Z+"


def test_error_report_frame_empty(make_row):
    df = error_report_frame([make_row(2)])
    assert df.empty
    assert "Row Number" in df.columns


def test_write_error_report(tmp_path: Path, make_row):
    path = tmp_path / "out" / "errors.xlsx"
    assert write_error_report([make_row(2), make_row(3, dob="31/02/2015")], path) == 1

    back = pd.read_excel(path, sheet_name=REPORT_SHEET, dtype=str, engine="openpyxl")
    assert back["Row Number"].tolist() == ["3"]
    assert back.loc[0, "Date of Birth * (YYYY-MM-DD)"] == "31/02/2015"
