from __future__ import annotations

import io
import logging
from datetime import date
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation

from ..models.field_spec import FieldType
from ..schema.registry import DEFAULT_REGISTRY, SchemaRegistry

"""Import template generator.

Sheets: ``Students`` (headers = registry labels, optional example row),
``Instructions`` and a hidden ``Lists`` sheet backing the dropdown validations.
Cells are written as text so that the parser reads back exactly what was written.
"""

__all__ = [
    "STUDENTS_SHEET",
    "INSTRUCTIONS_SHEET",
    "LISTS_SHEET",
    "TEMPLATE_MAX_ROWS",
    "EXAMPLE_ROW",
    "template_file_name",
    "build_template",
    "template_bytes",
    "save_template",
]

logger = logging.getLogger(__name__)

STUDENTS_SHEET = "Students"
INSTRUCTIONS_SHEET = "Instructions"
LISTS_SHEET = "Lists"
TEMPLATE_MAX_ROWS = 1000

# Passes validation without warnings.
EXAMPLE_ROW: dict[str, str] = {
    "admissionNo": "STU-2025-00001",
    "firstName": "Aarav",
    "lastName": "Sharma",
    "gender": "Male",
    "dob": "2015-04-12",
    "bloodGroup": "B+",
    "category": "General",
    "nationality": "Indian",
    "religion": "Hindu",
    "motherTongue": "Hindi",
    "placeOfBirth": "New Delhi",
    "aadharNo": "123456789012",
    "admissionClass": "4",
    "section": "A",
    "rollNo": "12",
    "currentYear": "2025-2026",
    "fatherName": "Rajesh Sharma",
    "fatherMobile": "9876543210",
    "fatherEmail": "rajesh.sharma@example.com",
    "fatherOccupation": "Engineer",
    "fatherAadhar": "234567890123",
    "motherName": "Priya Sharma",
    "motherMobile": "9876543211",
    "motherEmail": "priya.sharma@example.com",
    "motherOccupation": "Teacher",
    "motherAadhar": "345678901234",
    "includeGuardian": "No",
    "primaryContact": "father",
    "permStreet": "12 MG Road",
    "permCity": "New Delhi",
    "permState": "Delhi",
    "permPincode": "110001",
    "permCountry": "India",
    "sameAsPermanent": "Yes",
    "hasPreviousSchool": "No",
}

INSTRUCTIONS = [
    "How to fill this template",
    "",
    "1. Enter one student per row on the Students sheet, starting below the header row.",
    "2. Columns marked with * are required. Do not rename or reorder the header row.",
    "3. Dates use the YYYY-MM-DD format, e.g. 2015-04-12.",
    "4. Academic Year uses YYYY-YYYY with consecutive years, e.g. 2025-2026.",
    "5. Use the dropdowns for Gender, Class, Section, Category, Yes/No and similar columns.",
    "6. Leave Admission Number blank to have one generated as STU-{year}-{row}.",
    "7. Include Guardian = Yes requires Guardian Name and Guardian Mobile.",
    "8. Current same as Permanent = No requires all Current address columns.",
    "9. Has Previous School = Yes requires Previous School Name, Last Class Attended",
    "   and a Transfer Certificate document.",
    "10. Mobile numbers have 10-15 digits, Aadhaar numbers 12 digits, pincodes 6 digits.",
    "",
    "Documents (optional ZIP archive uploaded with the sheet)",
    "",
    "Name each file {AdmissionNumber}_{Document}.{ext}, for example:",
    "  STU-2025-00001_Photo.jpg, STU-2025-00001_Aadhar.pdf,",
    "  STU-2025-00001_Father_Photo.jpg, STU-2025-00001_TC.pdf",
    "Allowed types: jpg, jpeg, png, gif, pdf, doc, docx.",
    "Delete the example row before uploading.",
]


def template_file_name(today: date | None = None) -> str:
    today = today or date.today()
    return f"student_import_template_{today:%Y%m%d}.xlsx"


def _write_lists(wb: Workbook, registry: SchemaRegistry) -> dict[str, str]:
    """Fill the hidden Lists sheet; returns list name -> range formula."""
    ws = wb.create_sheet(LISTS_SHEET)
    ranges: dict[str, str] = {}
    for col, (name, values) in enumerate(registry.enum_lists().items(), start=1):
        letter = get_column_letter(col)
        ws.cell(row=1, column=col, value=name)
        for i, v in enumerate(values, start=2):
            ws.cell(row=i, column=col, value=v).number_format = "@"
        ranges[name] = f"'{LISTS_SHEET}'!${letter}$2:${letter}${1 + len(values)}"
    ws.sheet_state = "hidden"
    return ranges


def build_template(
    registry: SchemaRegistry = DEFAULT_REGISTRY, *, include_example: bool = True
) -> Workbook:
    wb = Workbook()
    ws = wb.active
    ws.title = STUDENTS_SHEET

    header_font = Font(bold=True)
    required_fill = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")
    for col, spec in enumerate(registry.fields, start=1):
        cell = ws.cell(row=1, column=col, value=spec.label)
        cell.font = header_font
        if spec.unconditionally_required:
            cell.fill = required_fill
        ws.column_dimensions[get_column_letter(col)].width = max(14, len(spec.label) + 2)
    ws.freeze_panes = "A2"

    if include_example:
        for col, spec in enumerate(registry.fields, start=1):
            value = EXAMPLE_ROW.get(spec.key)
            if value:
                ws.cell(row=2, column=col, value=value).number_format = "@"

    instructions = wb.create_sheet(INSTRUCTIONS_SHEET)
    for i, line in enumerate(INSTRUCTIONS, start=1):
        instructions.cell(row=i, column=1, value=line)
    instructions["A1"].font = Font(bold=True, size=14)
    instructions.column_dimensions["A"].width = 100

    ranges = _write_lists(wb, registry)
    list_names = {v: n for n, v in registry.enum_lists().items()}
    for col, spec in enumerate(registry.fields, start=1):
        if spec.type not in (FieldType.ENUM, FieldType.BOOLEAN) or spec.allowed_values is None:
            continue
        dv = DataValidation(
            type="list",
            formula1=ranges[list_names[spec.allowed_values]],
            allow_blank=True,
            showErrorMessage=not spec.advisory,
        )
        dv.error = f"Select a value from the {spec.label.rstrip(' *')} dropdown"
        ws.add_data_validation(dv)
        letter = get_column_letter(col)
        dv.add(f"{letter}2:{letter}{TEMPLATE_MAX_ROWS + 1}")
    return wb


def template_bytes(registry: SchemaRegistry = DEFAULT_REGISTRY, *, include_example: bool = True) -> bytes:
    bio = io.BytesIO()
    build_template(registry, include_example=include_example).save(bio)
    return bio.getvalue()


def save_template(
    directory: Path,
    *,
    include_example: bool = True,
    today: date | None = None,
    registry: SchemaRegistry = DEFAULT_REGISTRY,
) -> Path:
    """Write the template into ``directory`` under its date-stamped name."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / template_file_name(today)
    build_template(registry, include_example=include_example).save(path)
    logger.info("template written: %s", path)
    return path
