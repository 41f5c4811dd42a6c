from __future__ import annotations

import pytest

from admission_import.models.parsed_row import (
    ParsedRow,
    RawRecord,
    RowStatus,
    Severity,
    ValidationIssue,
    derive_status,
)
from admission_import.services.validator import generated_admission_no, revalidate, validate_row


def _fields(row: ParsedRow, severity: Severity | None = None) -> set[str]:
    return {i.field_key for i in row.issues if severity is None or i.severity is severity}


def test_example_values_are_valid(make_row):
    row = make_row()
    assert row.status is RowStatus.VALID
    assert row.issues == ()


def test_required_field_missing(make_row):
    row = make_row(firstName="")
    assert row.status is RowStatus.INVALID
    assert ValidationIssue("firstName", Severity.ERROR, "First Name is required") in row.issues


def test_values_are_stripped_and_canonicalized(make_row):
    row = make_row(gender=" male ", section="a", includeGuardian="n", sameAsPermanent="TRUE")
    assert row.data["gender"] == "Male"
    assert row.data["section"] == "A"
    assert row.data["includeGuardian"] == "No"
    assert row.data["sameAsPermanent"] == "Yes"
    assert row.status is RowStatus.VALID


@pytest.mark.parametrize("dob", ["2015-02-30", "12/04/2015", "2015-4-12", "yesterday"])
def test_invalid_dates(make_row, dob):
    row = make_row(dob=dob)
    assert "dob" in _fields(row, Severity.ERROR)


def test_enum_out_of_list_is_error(make_row):
    row = make_row(admissionClass="13")
    assert row.status is RowStatus.INVALID
    assert "admissionClass" in _fields(row, Severity.ERROR)


def test_advisory_enum_is_warning(make_row):
    row = make_row(bloodGroup="Z+", permState="Atlantis")
    assert row.status is RowStatus.WARNING
    assert _fields(row) == {"bloodGroup", "permState"}
    assert all(i.message == "Value not in standard list. Please verify." for i in row.issues)


def test_boolean_must_be_yes_or_no(make_row):
    row = make_row(hasPreviousSchool="maybe")
    assert "hasPreviousSchool" in _fields(row, Severity.ERROR)


def test_guardian_fields_required_when_included(make_row):
    row = make_row(includeGuardian="Yes")
    assert {"guardianName", "guardianMobile"} <= _fields(row, Severity.ERROR)
    ok = make_row(includeGuardian="Yes", guardianName="Sunita Rao", guardianMobile="9123456780")
    assert ok.status is RowStatus.VALID


def test_current_address_required_when_not_same(make_row):
    row = make_row(sameAsPermanent="No")
    assert {"currStreet", "currCity", "currState", "currPincode", "currCountry"} <= _fields(row, Severity.ERROR)


def test_previous_school_fields_required(make_row):
    row = make_row(hasPreviousSchool="Yes")
    assert {"previousSchoolName", "lastClassAttended"} <= _fields(row, Severity.ERROR)
    ok = make_row(hasPreviousSchool="Yes", previousSchoolName="City School", lastClassAttended="3")
    assert ok.status is RowStatus.VALID


def test_format_checks(make_row):
    assert make_row(fatherMobile="12345").status is RowStatus.WARNING
    assert make_row(fatherMobile="+91 98765-43210").status is RowStatus.VALID
    assert make_row(aadharNo="1234").status is RowStatus.WARNING
    assert make_row(permPincode="1100").status is RowStatus.WARNING
    assert make_row(fatherEmail="not-an-email").status is RowStatus.INVALID
    assert make_row(currentYear="2025-2027").status is RowStatus.INVALID
    assert make_row(currentYear="2025").status is RowStatus.INVALID


def test_cross_field_warnings(make_row):
    row = make_row(primaryContact="guardian")
    assert row.status is RowStatus.WARNING
    assert _fields(row) == {"primaryContact"}

    row = make_row(guardianName="Sunita Rao")
    assert _fields(row, Severity.WARNING) == {"includeGuardian"}

    row = make_row(tcIssueDate="2010-01-01")
    assert _fields(row, Severity.WARNING) == {"tcIssueDate"}


def test_blank_admission_number_is_generated(make_row):
    row = make_row(7, admissionNo="")
    assert row.admission_no == "STU-2025-00007"
    assert generated_admission_no("2025-2026", 7) == "STU-2025-00007"


def test_no_generated_admission_number_without_valid_year(make_row):
    row = make_row(7, admissionNo="", currentYear="")
    assert row.admission_no == ""
    assert generated_admission_no("2025-2030", 7) is None


@pytest.mark.parametrize("overrides", [
    {},
    {"bloodGroup": "Z+"},
    {"firstName": "", "dob": "2015-02-30"},
    {"admissionNo": "", "gender": "FEMALE"},
    {"includeGuardian": "yes", "primaryContact": "guardian"},
])
def test_revalidation_is_idempotent(make_row, overrides):
    row = make_row(**overrides)
    again = revalidate(row)
    assert again == row
    assert again.status is row.status


def test_validate_row_is_pure(valid_values):
    values = dict(valid_values, gender=" male ")
    record = RawRecord(2, values)
    validate_row(record)
    assert record.values["gender"] == " male "


@pytest.mark.parametrize("severities,expected", [
    ((), RowStatus.VALID),
    ((Severity.WARNING,), RowStatus.WARNING),
    ((Severity.WARNING, Severity.ERROR), RowStatus.INVALID),
    ((Severity.ERROR,), RowStatus.INVALID),
])
def test_status_is_worst_severity(severities, expected):
    issues = [ValidationIssue("f", s, "m") for s in severities]
    assert derive_status(issues) is expected
    assert ParsedRow(2, {}, tuple(issues)).status is expected
