from __future__ import annotations

import re
from datetime import date

from ..models.field_spec import FieldFormat, FieldSpec, FieldType
from ..models.parsed_row import ParsedRow, RawRecord, Severity, ValidationIssue
from ..schema.registry import DEFAULT_REGISTRY, SchemaRegistry, is_no, is_yes

"""Row validator: pure RawRecord -> ParsedRow transformation.

Values are stripped and canonicalized (enum casing, Yes/No) before checks, so running
the validator again on a ParsedRow's data yields the same data, issues and status.
"""

__all__ = [
    "validate_row",
    "revalidate",
    "generated_admission_no",
]

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SESSION_RE = re.compile(r"^(\d{4})-(\d{4})$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# format -> (severity, message)
_FORMAT_RULES: dict[FieldFormat, tuple[Severity, str]] = {
    FieldFormat.EMAIL: (Severity.ERROR, "Invalid email format"),
    FieldFormat.SESSION_YEAR: (Severity.ERROR, "Invalid academic year. Must be YYYY-YYYY (e.g., 2025-2026)"),
    FieldFormat.PHONE: (Severity.WARNING, "Phone number should be 10-15 digits"),
    FieldFormat.AADHAAR: (Severity.WARNING, "Aadhaar number should be 12 digits"),
    FieldFormat.PINCODE: (Severity.WARNING, "Pincode should be 6 digits"),
}


def _parse_date(value: str) -> date | None:
    if not _DATE_RE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _session_start(value: str) -> int | None:
    m = _SESSION_RE.match(value)
    if not m:
        return None
    start, end = int(m.group(1)), int(m.group(2))
    return start if end == start + 1 else None


def _format_ok(fmt: FieldFormat, value: str) -> bool:
    if fmt is FieldFormat.EMAIL:
        return bool(_EMAIL_RE.match(value))
    if fmt is FieldFormat.SESSION_YEAR:
        return _session_start(value) is not None
    if fmt is FieldFormat.PHONE:
        return bool(re.fullmatch(r"\d{10,15}", re.sub(r"[\s\-()+]", "", value)))
    if fmt is FieldFormat.AADHAAR:
        return bool(re.fullmatch(r"\d{12}", re.sub(r"[\s\-]", "", value)))
    if fmt is FieldFormat.PINCODE:
        return bool(re.fullmatch(r"\d{6}", value))
    return True  # pragma: no cover


def generated_admission_no(current_year: str, row_number: int) -> str | None:
    """Identifier used for rows that leave Admission Number blank."""
    start = _session_start(current_year)
    if start is None:
        return None
    return f"STU-{start}-{row_number:05d}"


def _canonical(spec: FieldSpec, value: str) -> str:
    if spec.type is FieldType.BOOLEAN:
        if is_yes(value):
            return "Yes"
        if is_no(value):
            return "No"
        return value
    if spec.type is FieldType.ENUM and spec.allowed_values:
        folded = value.casefold()
        for allowed in spec.allowed_values:
            if allowed.casefold() == folded:
                return allowed
    return value


def _check_field(spec: FieldSpec, value: str, data: dict[str, str]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if not value:
        if spec.is_required_for(data):
            label = spec.label.rstrip(" *").split(" (")[0].rstrip(" *")
            issues.append(ValidationIssue(spec.key, Severity.ERROR, f"{label} is required"))
        return issues

    if spec.type is FieldType.DATE and _parse_date(value) is None:
        issues.append(ValidationIssue(
            spec.key, Severity.ERROR, "Invalid date. Must be a calendar date in YYYY-MM-DD format (e.g., 2013-03-29)"
        ))
    elif spec.type is FieldType.BOOLEAN and value not in ("Yes", "No"):
        issues.append(ValidationIssue(spec.key, Severity.ERROR, "Must be Yes or No"))
    elif spec.type is FieldType.ENUM and spec.allowed_values and value not in spec.allowed_values:
        if spec.advisory:
            issues.append(ValidationIssue(spec.key, Severity.WARNING, "Value not in standard list. Please verify."))
        else:
            shown = ", ".join(spec.allowed_values)
            issues.append(ValidationIssue(spec.key, Severity.ERROR, f"Invalid value. Must be one of: {shown}"))

    if spec.format is not None and not _format_ok(spec.format, value):
        severity, message = _FORMAT_RULES[spec.format]
        issues.append(ValidationIssue(spec.key, severity, message))
    return issues


def _cross_field(data: dict[str, str]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    contact = data.get("primaryContact")
    if contact == "guardian" and not is_yes(data.get("includeGuardian")):
        issues.append(ValidationIssue(
            "primaryContact", Severity.WARNING,
            "Guardian is set as primary contact but Include Guardian is not Yes",
        ))
    if data.get("guardianName") and not is_yes(data.get("includeGuardian")):
        issues.append(ValidationIssue(
            "includeGuardian", Severity.WARNING,
            "Guardian details given but Include Guardian is not Yes; guardian documents will still be requested",
        ))
    dob = _parse_date(data.get("dob", ""))
    tc_date = _parse_date(data.get("tcIssueDate", ""))
    if dob and tc_date and tc_date < dob:
        issues.append(ValidationIssue("tcIssueDate", Severity.WARNING, "TC issue date is before date of birth"))
    return issues


def validate_row(record: RawRecord, registry: SchemaRegistry = DEFAULT_REGISTRY) -> ParsedRow:
    """Validate one raw record. No side effects."""
    data: dict[str, str] = {}
    for spec in registry.fields:
        raw = record.values.get(spec.key)
        value = "" if raw is None else str(raw).strip()
        data[spec.key] = _canonical(spec, value)

    if "admissionNo" in data and not data["admissionNo"]:
        generated = generated_admission_no(data.get("currentYear", ""), record.row_number)
        if generated:
            data["admissionNo"] = generated

    issues: list[ValidationIssue] = []
    for spec in registry.fields:
        issues.extend(_check_field(spec, data[spec.key], data))
    issues.extend(_cross_field(data))
    return ParsedRow(row_number=record.row_number, data=data, issues=tuple(issues))


def revalidate(row: ParsedRow, registry: SchemaRegistry = DEFAULT_REGISTRY) -> ParsedRow:
    """Re-run validation on a row's current data (e.g. after an edit)."""
    return validate_row(RawRecord(row.row_number, dict(row.data)), registry)
