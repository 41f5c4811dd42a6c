from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..schema.registry import is_yes

"""Row data -> nested student record submitted to the creation collaborator.

Optional blanks are dropped (None values are removed) so the creator only sees what
the operator supplied. ``documents`` maps "{section}.{slot}" to stored references.
"""

__all__ = [
    "normalize_student_record",
]


def _opt(data: Mapping[str, str], key: str) -> str | None:
    return data.get(key) or None


def _person(data: Mapping[str, str], prefix: str) -> dict[str, Any] | None:
    if not data.get(f"{prefix}Name"):
        return None
    return {
        "name": data[f"{prefix}Name"],
        "mobile": data.get(f"{prefix}Mobile", ""),
        "email": _opt(data, f"{prefix}Email"),
        "occupation": _opt(data, f"{prefix}Occupation"),
        "aadharNumber": _opt(data, f"{prefix}Aadhar"),
        "officeAddress": _opt(data, f"{prefix}OfficeAddress"),
    }


def _previous_school(data: Mapping[str, str]) -> dict[str, Any] | None:
    if not is_yes(data.get("hasPreviousSchool")):
        return None
    tc = None
    if data.get("tcNumber") or data.get("tcIssueDate"):
        tc = {"number": data.get("tcNumber", ""), "issueDate": data.get("tcIssueDate", "")}
    return {
        "name": data.get("previousSchoolName", ""),
        "lastClass": data.get("lastClassAttended", ""),
        "address": _opt(data, "previousSchoolAddress"),
        "reasonForLeaving": _opt(data, "reasonForLeaving"),
        "transferCertificate": tc,
    }


def _address(data: Mapping[str, str], prefix: str) -> dict[str, Any]:
    return {
        "line1": data.get(f"{prefix}Street", ""),
        "city": data.get(f"{prefix}City", ""),
        "state": data.get(f"{prefix}State", ""),
        "pincode": data.get(f"{prefix}Pincode", ""),
        "country": data.get(f"{prefix}Country", ""),
    }


def _prune(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _prune(v) for k, v in value.items() if v is not None}
    return value


def normalize_student_record(
    data: Mapping[str, str], documents: Mapping[str, Mapping[str, Any]] | None = None
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "admissionNumber": data.get("admissionNo", ""),
        "basic": {
            "firstName": data.get("firstName", ""),
            "middleName": _opt(data, "middleName"),
            "lastName": data.get("lastName", ""),
            "gender": data.get("gender", ""),
            "dateOfBirth": data.get("dob", ""),
            "bloodGroup": _opt(data, "bloodGroup"),
            "category": data.get("category", ""),
            "nationality": data.get("nationality") or "Indian",
            "religion": _opt(data, "religion"),
            "motherTongue": _opt(data, "motherTongue"),
            "caste": _opt(data, "caste"),
            "placeOfBirth": _opt(data, "placeOfBirth"),
            "aadharNumber": _opt(data, "aadharNo"),
        },
        "academic": {
            "currentYear": data.get("currentYear", ""),
            "admissionClass": data.get("admissionClass", ""),
            "section": data.get("section", ""),
            "rollNumber": _opt(data, "rollNo"),
            "previousSchool": _previous_school(data),
        },
        "father": _person(data, "father"),
        "mother": _person(data, "mother"),
        "guardian": _person(data, "guardian"),
        "primaryContact": data.get("primaryContact", ""),
        "permanentAddress": _address(data, "perm"),
        "currentAddress": None if is_yes(data.get("sameAsPermanent")) else _address(data, "curr"),
        "status": "active",
        "notes": _opt(data, "notes"),
        "documents": {k: dict(v) for k, v in (documents or {}).items()},
    }
    return _prune(record)
