from __future__ import annotations

from datetime import date
from pathlib import Path

from openpyxl import load_workbook
from openpyxl.utils import get_column_letter

from admission_import.excel.template import (
    EXAMPLE_ROW,
    INSTRUCTIONS_SHEET,
    LISTS_SHEET,
    STUDENTS_SHEET,
    build_template,
    save_template,
    template_file_name,
)
from admission_import.schema.registry import DEFAULT_REGISTRY


def test_template_file_name_is_date_stamped():
    assert template_file_name(date(2025, 3, 7)) == "student_import_template_20250307.xlsx"


def test_sheets_and_headers():
    wb = build_template()
    assert wb.sheetnames == [STUDENTS_SHEET, INSTRUCTIONS_SHEET, LISTS_SHEET]
    assert wb[LISTS_SHEET].sheet_state == "hidden"
    header = [c.value for c in wb[STUDENTS_SHEET][1]]
    assert header == [f.label for f in DEFAULT_REGISTRY.fields]


def test_example_row_optional():
    ws = build_template(include_example=True)[STUDENTS_SHEET]
    col = DEFAULT_REGISTRY.keys.index("firstName") + 1
    assert ws.cell(row=2, column=col).value == EXAMPLE_ROW["firstName"]
    assert build_template(include_example=False)[STUDENTS_SHEET].max_row == 1


def test_dropdowns_reference_lists_sheet():
    ws = build_template()[STUDENTS_SHEET]
    formulas = {dv.formula1 for dv in ws.data_validations.dataValidation}
    assert all(f.startswith(f"'{LISTS_SHEET}'!") for f in formulas)
    gender_col = DEFAULT_REGISTRY.keys.index("gender") + 1
    letter = get_column_letter(gender_col)
    covered = [dv for dv in ws.data_validations.dataValidation if str(dv.sqref).split(":")[0] == f"{letter}2"]
    assert covered and covered[0].type == "list"


def test_save_template(tmp_path: Path):
    path = save_template(tmp_path / "out", today=date(2025, 1, 2))
    assert path.name == "student_import_template_20250102.xlsx"
    wb = load_workbook(path)
    assert STUDENTS_SHEET in wb.sheetnames
