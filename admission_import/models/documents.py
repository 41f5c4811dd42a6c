from __future__ import annotations

import zipfile
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

"""Document slot and assignment models.

Every document requirement of a row is a DocumentSlot addressed by a SlotId
(section, slot_key). The transfer certificate is the student-section slot
``transferCertificate`` so that all documents share one slot-list representation.
"""

__all__ = [
    "DocumentSection",
    "SlotId",
    "DocumentSlot",
    "FileOrigin",
    "AttachedFile",
    "RowDocumentAssignments",
    "TRANSFER_CERTIFICATE",
]


class DocumentSection(Enum):
    STUDENT = "student"
    FATHER = "father"
    MOTHER = "mother"
    GUARDIAN = "guardian"


class SlotId(NamedTuple):
    section: DocumentSection
    slot_key: str

    def __str__(self) -> str:
        return f"{self.section.value}.{self.slot_key}"

    @staticmethod
    def parse(text: str) -> SlotId:
        section, _, slot_key = text.partition(".")
        if not slot_key:
            raise ValueError(f"invalid slot id: {text!r}")
        return SlotId(DocumentSection(section), slot_key)


TRANSFER_CERTIFICATE = SlotId(DocumentSection.STUDENT, "transferCertificate")


@dataclass(frozen=True)
class DocumentSlot:
    section: DocumentSection
    slot_key: str
    display_name: str
    required: bool

    @property
    def slot_id(self) -> SlotId:
        return SlotId(self.section, self.slot_key)


class FileOrigin(Enum):
    MANUAL = "manual"  # picked per row by the operator
    CAPTURE = "capture"  # taken with a capture device (camera)
    ARCHIVE = "archive"  # matched from the documents ZIP


@dataclass(frozen=True)
class AttachedFile:
    """A local file assigned to a slot, not yet uploaded.

    For archive entries ``path`` is the ZIP file and ``archive_member`` the entry name.
    """
    filename: str
    path: str
    size: int
    origin: FileOrigin = FileOrigin.MANUAL
    archive_member: str | None = None

    @property
    def suffix(self) -> str:
        return Path(self.filename).suffix.lower()

    def read_bytes(self) -> bytes:
        if self.archive_member is not None:
            with zipfile.ZipFile(self.path) as zf:
                return zf.read(self.archive_member)
        return Path(self.path).read_bytes()

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["origin"] = self.origin.value
        return d

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> AttachedFile:
        return AttachedFile(
            filename=raw["filename"],
            path=raw["path"],
            size=int(raw["size"]),
            origin=FileOrigin(raw.get("origin", "manual")),
            archive_member=raw.get("archive_member"),
        )

    @staticmethod
    def from_path(path: Path, origin: FileOrigin = FileOrigin.MANUAL) -> AttachedFile:
        return AttachedFile(filename=path.name, path=str(path), size=path.stat().st_size, origin=origin)


class RowDocumentAssignments:
    """Slot -> attached file map for one row. None marks a known but empty slot."""

    def __init__(self, slots: dict[SlotId, AttachedFile | None] | None = None) -> None:
        self._slots: dict[SlotId, AttachedFile | None] = dict(slots or {})

    def __contains__(self, slot_id: object) -> bool:
        return slot_id in self._slots

    def __iter__(self) -> Iterator[SlotId]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RowDocumentAssignments):
            return NotImplemented
        return self._slots == other._slots

    def __repr__(self) -> str:  # pragma: no cover
        return f"RowDocumentAssignments({self._slots!r})"

    def get(self, slot_id: SlotId) -> AttachedFile | None:
        return self._slots.get(slot_id)

    def is_assigned(self, slot_id: SlotId) -> bool:
        return self._slots.get(slot_id) is not None

    def assign(self, slot_id: SlotId, attached: AttachedFile) -> None:
        self._slots[slot_id] = attached

    def clear(self, slot_id: SlotId) -> None:
        if slot_id in self._slots:
            self._slots[slot_id] = None

    def assigned(self) -> dict[SlotId, AttachedFile]:
        return {k: v for k, v in self._slots.items() if v is not None}

    @property
    def transfer_certificate(self) -> AttachedFile | None:
        return self._slots.get(TRANSFER_CERTIFICATE)

    def copy(self) -> RowDocumentAssignments:
        return RowDocumentAssignments(self._slots)

    def to_dict(self) -> dict[str, Any]:
        return {str(k): (v.to_dict() if v is not None else None) for k, v in self._slots.items()}

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> RowDocumentAssignments:
        return RowDocumentAssignments(
            {SlotId.parse(k): (AttachedFile.from_dict(v) if v else None) for k, v in raw.items()}
        )
