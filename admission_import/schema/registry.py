from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from ..models.field_spec import FieldFormat, FieldSpec, FieldType

"""Schema registry: the canonical admission template columns.

The same FieldSpec list drives the template generator (headers, dropdowns), the
parser (header -> field mapping) and the validator (types, requiredness, formats).
Labels ending in `*` mark unconditionally required columns.
"""

__all__ = [
    "SchemaRegistry",
    "DEFAULT_REGISTRY",
    "FIELDS",
    "ENUMS",
    "is_yes",
    "normalize_label",
]

YES = "Yes"
NO = "No"
YES_NO = (YES, NO)

ENUMS: dict[str, tuple[str, ...]] = {
    "Genders": ("Male", "Female", "Other"),
    "Classes": ("Nursery", "LKG", "UKG", "1", "2", "3", "4", "5", "6", "7", "8", "9", "10", "11", "12"),
    "Sections": ("A", "B", "C", "D", "E"),
    "BloodGroups": ("A+", "A-", "B+", "B-", "O+", "O-", "AB+", "AB-"),
    "Categories": ("General", "OBC", "SC", "ST", "EWS"),
    "Religions": ("Hindu", "Muslim", "Christian", "Sikh", "Buddhist", "Jain", "Parsi", "Other"),
    "States": (
        "Andhra Pradesh", "Arunachal Pradesh", "Assam", "Bihar", "Chhattisgarh", "Goa",
        "Gujarat", "Haryana", "Himachal Pradesh", "Jharkhand", "Karnataka", "Kerala",
        "Madhya Pradesh", "Maharashtra", "Manipur", "Meghalaya", "Mizoram", "Nagaland",
        "Odisha", "Punjab", "Rajasthan", "Sikkim", "Tamil Nadu", "Telangana", "Tripura",
        "Uttar Pradesh", "Uttarakhand", "West Bengal", "Andaman and Nicobar Islands",
        "Chandigarh", "Dadra and Nagar Haveli and Daman and Diu", "Delhi",
        "Jammu and Kashmir", "Ladakh", "Lakshadweep", "Puducherry",
    ),
    "PrimaryContact": ("father", "mother", "guardian"),
    "YesNo": YES_NO,
}

_TRUTHY = {"yes", "y", "true", "1"}
_FALSY = {"no", "n", "false", "0"}


def is_yes(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def is_no(value: str | None) -> bool:
    return (value or "").strip().lower() in _FALSY


def _yes(key: str):
    return lambda data: is_yes(data.get(key))


def _no(key: str):
    return lambda data: is_no(data.get(key))


def normalize_label(text: object) -> str:
    """Header comparison key: case, whitespace, line breaks, `*` and punctuation ignored."""
    return re.sub(r"[^0-9a-z]", "", str(text).casefold())


def _enum(key: str, label: str, values: str, required: bool = False, **kw) -> FieldSpec:
    return FieldSpec(key, label, FieldType.ENUM, required, allowed_values=ENUMS[values], **kw)


def _bool(key: str, label: str, **kw) -> FieldSpec:
    return FieldSpec(key, label, FieldType.BOOLEAN, allowed_values=YES_NO, **kw)


def _guardian(data: Mapping[str, str]) -> bool:
    return is_yes(data.get("includeGuardian"))


FIELDS: tuple[FieldSpec, ...] = (
    # Identity
    FieldSpec("admissionNo", "Admission Number"),
    FieldSpec("firstName", "First Name *", required=True),
    FieldSpec("middleName", "Middle Name"),
    FieldSpec("lastName", "Last Name *", required=True),
    _enum("gender", "Gender *", "Genders", required=True),
    FieldSpec("dob", "Date of Birth * (YYYY-MM-DD)", FieldType.DATE, required=True),
    _enum("bloodGroup", "Blood Group", "BloodGroups", advisory=True),
    _enum("category", "Category *", "Categories", required=True),
    FieldSpec("nationality", "Nationality *", required=True),
    _enum("religion", "Religion", "Religions", advisory=True),
    FieldSpec("motherTongue", "Mother Tongue"),
    FieldSpec("caste", "Caste"),
    FieldSpec("placeOfBirth", "Place of Birth"),
    FieldSpec("aadharNo", "Aadhaar Number", format=FieldFormat.AADHAAR),
    # Academic
    _enum("admissionClass", "Admission Class *", "Classes", required=True, group="academic"),
    _enum("section", "Section *", "Sections", required=True, group="academic"),
    FieldSpec("rollNo", "Roll Number", group="academic"),
    FieldSpec("currentYear", "Academic Year * (YYYY-YYYY)", required=True,
              format=FieldFormat.SESSION_YEAR, group="academic"),
    # Father
    FieldSpec("fatherName", "Father Name *", required=True, group="father"),
    FieldSpec("fatherMobile", "Father Mobile *", required=True, format=FieldFormat.PHONE, group="father"),
    FieldSpec("fatherEmail", "Father Email", format=FieldFormat.EMAIL, group="father"),
    FieldSpec("fatherOccupation", "Father Occupation", group="father"),
    FieldSpec("fatherAadhar", "Father Aadhaar *", required=True, format=FieldFormat.AADHAAR, group="father"),
    FieldSpec("fatherOfficeAddress", "Father Office Address", group="father"),
    # Mother
    FieldSpec("motherName", "Mother Name *", required=True, group="mother"),
    FieldSpec("motherMobile", "Mother Mobile *", required=True, format=FieldFormat.PHONE, group="mother"),
    FieldSpec("motherEmail", "Mother Email", format=FieldFormat.EMAIL, group="mother"),
    FieldSpec("motherOccupation", "Mother Occupation", group="mother"),
    FieldSpec("motherAadhar", "Mother Aadhaar *", required=True, format=FieldFormat.AADHAAR, group="mother"),
    FieldSpec("motherOfficeAddress", "Mother Office Address", group="mother"),
    # Guardian (required only when Include Guardian = Yes)
    _bool("includeGuardian", "Include Guardian (Yes/No)", group="guardian"),
    FieldSpec("guardianName", "Guardian Name", required=True, applies_when=_guardian, group="guardian"),
    FieldSpec("guardianMobile", "Guardian Mobile", required=True, applies_when=_guardian,
              format=FieldFormat.PHONE, group="guardian"),
    FieldSpec("guardianEmail", "Guardian Email", format=FieldFormat.EMAIL, group="guardian"),
    FieldSpec("guardianOccupation", "Guardian Occupation", group="guardian"),
    FieldSpec("guardianAadhar", "Guardian Aadhaar", format=FieldFormat.AADHAAR, group="guardian"),
    FieldSpec("guardianOfficeAddress", "Guardian Office Address", group="guardian"),
    _enum("primaryContact", "Primary Contact *", "PrimaryContact", required=True, group="contact"),
    # Addresses
    FieldSpec("permStreet", "Permanent Street *", required=True, group="address"),
    FieldSpec("permCity", "Permanent City *", required=True, group="address"),
    _enum("permState", "Permanent State *", "States", required=True, advisory=True, group="address"),
    FieldSpec("permPincode", "Permanent Pincode *", required=True, format=FieldFormat.PINCODE, group="address"),
    FieldSpec("permCountry", "Permanent Country *", required=True, group="address"),
    _bool("sameAsPermanent", "Current same as Permanent (Yes/No)", group="address"),
    FieldSpec("currStreet", "Current Street", required=True, applies_when=_no("sameAsPermanent"), group="address"),
    FieldSpec("currCity", "Current City", required=True, applies_when=_no("sameAsPermanent"), group="address"),
    _enum("currState", "Current State", "States", required=True, advisory=True,
          applies_when=_no("sameAsPermanent"), group="address"),
    FieldSpec("currPincode", "Current Pincode", required=True, applies_when=_no("sameAsPermanent"),
              format=FieldFormat.PINCODE, group="address"),
    FieldSpec("currCountry", "Current Country", required=True, applies_when=_no("sameAsPermanent"),
              group="address"),
    # Previous school & transfer certificate
    _bool("hasPreviousSchool", "Has Previous School (Yes/No)", group="previous_school"),
    FieldSpec("previousSchoolName", "Previous School Name", required=True,
              applies_when=_yes("hasPreviousSchool"), group="previous_school"),
    FieldSpec("previousSchoolAddress", "Previous School Address", group="previous_school"),
    FieldSpec("lastClassAttended", "Last Class Attended", required=True,
              applies_when=_yes("hasPreviousSchool"), group="previous_school"),
    FieldSpec("tcNumber", "TC Number", group="previous_school"),
    FieldSpec("tcIssueDate", "TC Issue Date (YYYY-MM-DD)", FieldType.DATE, group="previous_school"),
    FieldSpec("reasonForLeaving", "Reason For Leaving", group="previous_school"),
    FieldSpec("notes", "Additional Notes", group="system"),
)


class SchemaRegistry:
    """Lookup helpers over an immutable FieldSpec sequence."""

    def __init__(self, fields: Iterable[FieldSpec]) -> None:
        self._fields: tuple[FieldSpec, ...] = tuple(fields)
        self._by_key = {f.key: f for f in self._fields}
        if len(self._by_key) != len(self._fields):
            raise ValueError("duplicate field keys in schema")
        self._by_label = {normalize_label(f.label): f.key for f in self._fields}

    @property
    def fields(self) -> tuple[FieldSpec, ...]:
        return self._fields

    @property
    def keys(self) -> list[str]:
        return [f.key for f in self._fields]

    def __getitem__(self, key: str) -> FieldSpec:
        return self._by_key[key]

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __len__(self) -> int:
        return len(self._fields)

    def key_for_header(self, header: object) -> str | None:
        """Map a header cell to a field key. Also accepts the bare field key."""
        norm = normalize_label(header)
        if not norm:
            return None
        if norm in self._by_label:
            return self._by_label[norm]
        for f in self._fields:
            if normalize_label(f.key) == norm:
                return f.key
        return None

    def required_keys(self) -> list[str]:
        """Columns that must be present in an uploaded sheet."""
        return [f.key for f in self._fields if f.unconditionally_required]

    def enum_lists(self) -> dict[str, tuple[str, ...]]:
        """Named value lists backing template dropdowns, keyed by list name."""
        lists: dict[str, tuple[str, ...]] = {}
        for f in self._fields:
            if f.allowed_values is None:
                continue
            name = next((n for n, v in ENUMS.items() if v == f.allowed_values), f.key)
            lists[name] = f.allowed_values
        return lists


DEFAULT_REGISTRY = SchemaRegistry(FIELDS)
