from __future__ import annotations

from collections.abc import Iterable, Mapping

from ..models.documents import (
    TRANSFER_CERTIFICATE,
    DocumentSection,
    DocumentSlot,
    RowDocumentAssignments,
    SlotId,
)
from ..schema.registry import is_yes

"""Document requirement resolver.

Slots depend only on row data: fixed student/father/mother slots, guardian slots when a
guardian is indicated, the transfer certificate slot when a previous school is indicated.
Whenever those fields change the slots are resolved again and the row's assignments
reconciled against the new slot list.
"""

__all__ = [
    "resolve_document_slots",
    "reconcile_assignments",
    "missing_required_slots",
    "has_guardian",
    "has_previous_school",
    "GOVERNING_FIELDS",
    "slot_by_id",
]

# Row fields whose edits can change the slot list
GOVERNING_FIELDS = frozenset({"includeGuardian", "guardianName", "hasPreviousSchool"})

_PERSON_SLOTS = {
    DocumentSection.FATHER: "Father's",
    DocumentSection.MOTHER: "Mother's",
    DocumentSection.GUARDIAN: "Guardian's",
}


def has_guardian(data: Mapping[str, str]) -> bool:
    return bool(data.get("guardianName")) or is_yes(data.get("includeGuardian"))


def has_previous_school(data: Mapping[str, str]) -> bool:
    return is_yes(data.get("hasPreviousSchool"))


def _person(section: DocumentSection) -> list[DocumentSlot]:
    owner = _PERSON_SLOTS[section]
    return [
        DocumentSlot(section, "photo", f"{owner} Photo", True),
        DocumentSlot(section, "aadhar", f"{owner} Aadhar Card", True),
    ]


def resolve_document_slots(
    data: Mapping[str, str], *, require_transfer_certificate: bool = True
) -> list[DocumentSlot]:
    """Deterministic slot list for one row's data."""
    slots = [
        DocumentSlot(DocumentSection.STUDENT, "photo", "Student Photo", True),
        DocumentSlot(DocumentSection.STUDENT, "aadhar", "Student Aadhar Card", True),
        DocumentSlot(DocumentSection.STUDENT, "birthCertificate", "Birth Certificate", False),
    ]
    slots += _person(DocumentSection.FATHER)
    slots += _person(DocumentSection.MOTHER)
    if has_guardian(data):
        slots += _person(DocumentSection.GUARDIAN)
    if has_previous_school(data):
        slots.append(DocumentSlot(
            TRANSFER_CERTIFICATE.section,
            TRANSFER_CERTIFICATE.slot_key,
            "Transfer Certificate",
            require_transfer_certificate,
        ))
    return slots


def reconcile_assignments(
    assignments: RowDocumentAssignments | None, slots: Iterable[DocumentSlot]
) -> RowDocumentAssignments:
    """Assignments for exactly ``slots``: kept where the slot survives, new slots empty.

    Files held by slots that no longer apply are discarded.
    """
    current = assignments or RowDocumentAssignments()
    return RowDocumentAssignments({s.slot_id: current.get(s.slot_id) for s in slots})


def missing_required_slots(
    slots: Iterable[DocumentSlot], assignments: RowDocumentAssignments
) -> list[DocumentSlot]:
    return [s for s in slots if s.required and not assignments.is_assigned(s.slot_id)]


def slot_by_id(slots: Iterable[DocumentSlot], slot_id: SlotId) -> DocumentSlot | None:
    return next((s for s in slots if s.slot_id == slot_id), None)
