from __future__ import annotations

import logging
import zipfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import Enum
from pathlib import Path, PurePosixPath

from ..errors import FileUnreadableError, SizeExceededError
from ..models.documents import DocumentSection, DocumentSlot, RowDocumentAssignments, SlotId
from ..models.parsed_row import ParsedRow
from ..schema.registry import normalize_label

"""Document matcher: assigns documents-archive entries to row document slots.

Naming convention: ``{AdmissionIdentifier}_{DocumentLabel}.{ext}`` (case-insensitive).

Label -> slot resolution uses two explicit tiers:

1. exact: the normalized label equals one of the slot's aliases (display name,
   "{section} {slot}", bare names for student slots, "TC");
2. fuzzy: ``difflib.SequenceMatcher`` ratio against the aliases, accepted at
   FUZZY_THRESHOLD or above, highest score wins.

A tie inside the deciding tier leaves the entry unmatched instead of guessing.
Entries are only proposed for slots that are currently empty, so manual uploads are
never overwritten.
"""

__all__ = [
    "ArchiveEntry",
    "MatchTier",
    "MatchedEntry",
    "UnmatchedReason",
    "UnmatchedEntry",
    "MatchResult",
    "FUZZY_THRESHOLD",
    "read_archive_entries",
    "match_archive_entries",
    "match_label",
]

logger = logging.getLogger(__name__)

FUZZY_THRESHOLD = 0.85


@dataclass(frozen=True)
class ArchiveEntry:
    filename: str  # base name used for matching
    member: str  # full name inside the archive
    size: int = 0


class MatchTier(Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"


class UnmatchedReason(Enum):
    BAD_NAME = "bad_name"
    UNSUPPORTED_TYPE = "unsupported_type"
    TOO_LARGE = "too_large"
    NO_ROW = "no_row"
    AMBIGUOUS_ROW = "ambiguous_row"
    NO_SLOT = "no_slot"
    AMBIGUOUS_SLOT = "ambiguous_slot"
    SLOT_OCCUPIED = "slot_occupied"


@dataclass(frozen=True)
class MatchedEntry:
    entry: ArchiveEntry
    row_number: int
    slot_id: SlotId
    tier: MatchTier


@dataclass(frozen=True)
class UnmatchedEntry:
    filename: str
    reason: UnmatchedReason
    detail: str = ""


@dataclass(frozen=True)
class MatchResult:
    matched: list[MatchedEntry] = field(default_factory=list)
    unmatched: list[UnmatchedEntry] = field(default_factory=list)

    @property
    def assignments(self) -> dict[int, dict[SlotId, str]]:
        """row number -> slot -> archive member."""
        out: dict[int, dict[SlotId, str]] = {}
        for m in self.matched:
            out.setdefault(m.row_number, {})[m.slot_id] = m.entry.member
        return out


def read_archive_entries(path: Path, *, max_bytes: int) -> list[ArchiveEntry]:
    """List document entries of a ZIP archive, enforcing the archive size limit first."""
    try:
        size = path.stat().st_size
    except OSError as e:
        raise FileUnreadableError(f"cannot read archive {path.name}: {e}") from e
    if size > max_bytes:
        raise SizeExceededError(path.name, size, max_bytes)
    try:
        with zipfile.ZipFile(path) as zf:
            infos = zf.infolist()
    except zipfile.BadZipFile as e:
        raise FileUnreadableError(f"archive {path.name} is corrupt or incomplete: {e}") from e
    except OSError as e:
        raise FileUnreadableError(f"cannot read archive {path.name}: {e}") from e

    entries: list[ArchiveEntry] = []
    for info in infos:
        if info.is_dir():
            continue
        p = PurePosixPath(info.filename)
        if p.parts and p.parts[0] == "__MACOSX":
            continue
        if p.name.startswith("."):
            continue
        entries.append(ArchiveEntry(filename=p.name, member=info.filename, size=info.file_size))
    logger.debug("archive=%s entries=%d", path.name, len(entries))
    return entries


def _norm(text: str) -> str:
    return normalize_label(text).replace("aadhaar", "aadhar")


def _aliases(slot: DocumentSlot) -> set[str]:
    base = slot.display_name.split(" ", 1)[1] if slot.section is not DocumentSection.STUDENT else slot.display_name
    if slot.section is DocumentSection.STUDENT and base.startswith("Student "):
        base = base[len("Student "):]
    names = {
        slot.display_name,
        f"{slot.section.value} {slot.slot_key}",
        f"{slot.section.value} {base}",
    }
    if slot.section is DocumentSection.STUDENT:
        names |= {base, slot.slot_key}
        if slot.slot_key == "transferCertificate":
            names.add("TC")
    return {_norm(n) for n in names}


def match_label(label: str, slots: Sequence[DocumentSlot]) -> tuple[DocumentSlot | None, MatchTier | None, bool]:
    """Resolve a document label against slots.

    Returns (slot, tier, ambiguous). ``slot`` is None when nothing matched or when the
    deciding tier had a tie (``ambiguous`` True).
    """
    norm = _norm(label)
    if not norm:
        return None, None, False
    exact = [s for s in slots if norm in _aliases(s)]
    if len(exact) == 1:
        return exact[0], MatchTier.EXACT, False
    if len(exact) > 1:
        return None, MatchTier.EXACT, True

    scored: list[tuple[float, DocumentSlot]] = []
    for s in slots:
        score = max(SequenceMatcher(None, norm, a).ratio() for a in _aliases(s))
        if score >= FUZZY_THRESHOLD:
            scored.append((score, s))
    if not scored:
        return None, None, False
    best = max(score for score, _ in scored)
    top = [s for score, s in scored if score == best]
    if len(top) > 1:
        return None, MatchTier.FUZZY, True
    return top[0], MatchTier.FUZZY, False


def _row_index(rows: Sequence[ParsedRow]) -> dict[str, list[int]]:
    index: dict[str, list[int]] = {}
    for r in rows:
        ident = r.admission_no.strip().casefold()
        if ident:
            index.setdefault(ident, []).append(r.row_number)
    return index


def match_archive_entries(
    entries: Sequence[ArchiveEntry | str],
    rows: Sequence[ParsedRow],
    slots_by_row: Mapping[int, Sequence[DocumentSlot]],
    assignments_by_row: Mapping[int, RowDocumentAssignments] | None = None,
    *,
    allowed_extensions: frozenset[str] | None = None,
    max_document_bytes: int | None = None,
) -> MatchResult:
    """Propose slot assignments for archive entries; report everything else as unmatched.

    Entry names follow ``{AdmissionIdentifier}_{DocumentLabel}.{ext}``. Every ``_``
    split point is tried against the row identifiers. The label then goes through
    ``match_label``: an exact alias match wins over any fuzzy one.

    Args:
        entries: Archive entries, or bare member names
        rows: Session rows; admission numbers identify them
        slots_by_row: Document slots that apply to each row
        assignments_by_row: Current assignments; occupied slots are never proposed
        allowed_extensions: Lowercase extensions accepted; None accepts all
        max_document_bytes: Per-document size limit; None disables it

    Returns:
        MatchResult holding each entry exactly once, matched or unmatched with a reason
    """
    assignments_by_row = assignments_by_row or {}
    index = _row_index(rows)
    claimed: set[tuple[int, SlotId]] = set()
    matched: list[MatchedEntry] = []
    unmatched: list[UnmatchedEntry] = []

    normalized = [
        e if isinstance(e, ArchiveEntry) else ArchiveEntry(filename=PurePosixPath(e).name, member=e)
        for e in entries
    ]
    for entry in sorted(normalized, key=lambda e: e.member.casefold()):
        name = entry.filename
        stem, dot, ext = name.rpartition(".")
        if not dot:
            stem, ext = name, ""
        parts = stem.split("_")
        if len(parts) < 2 or not all(parts):
            unmatched.append(UnmatchedEntry(name, UnmatchedReason.BAD_NAME, "expected {AdmissionNo}_{Document}.{ext}"))
            continue
        if allowed_extensions is not None and ext.lower() not in allowed_extensions:
            unmatched.append(UnmatchedEntry(name, UnmatchedReason.UNSUPPORTED_TYPE, ext or "no extension"))
            continue
        if max_document_bytes is not None and entry.size > max_document_bytes:
            unmatched.append(UnmatchedEntry(name, UnmatchedReason.TOO_LARGE, f"{entry.size} bytes"))
            continue

        hits: list[tuple[int, str]] = []  # (row_number, label)
        duplicated_id = False
        for i in range(1, len(parts)):
            prefix = "_".join(parts[:i]).casefold()
            if prefix in index:
                row_numbers = index[prefix]
                if len(row_numbers) > 1:
                    duplicated_id = True
                hits.append((row_numbers[0], "_".join(parts[i:])))
        if not hits:
            unmatched.append(UnmatchedEntry(name, UnmatchedReason.NO_ROW))
            continue
        if duplicated_id or len({r for r, _ in hits}) > 1:
            unmatched.append(UnmatchedEntry(name, UnmatchedReason.AMBIGUOUS_ROW, "identifier matches several rows"))
            continue

        row_number, label = hits[0]
        slot, tier, ambiguous = match_label(label, slots_by_row.get(row_number, ()))
        if ambiguous:
            unmatched.append(UnmatchedEntry(name, UnmatchedReason.AMBIGUOUS_SLOT, label))
            continue
        if slot is None or tier is None:
            unmatched.append(UnmatchedEntry(name, UnmatchedReason.NO_SLOT, label))
            continue

        current = assignments_by_row.get(row_number)
        key = (row_number, slot.slot_id)
        if key in claimed or (current is not None and current.is_assigned(slot.slot_id)):
            unmatched.append(UnmatchedEntry(name, UnmatchedReason.SLOT_OCCUPIED, str(slot.slot_id)))
            continue
        claimed.add(key)
        matched.append(MatchedEntry(entry=entry, row_number=row_number, slot_id=slot.slot_id, tier=tier))
        logger.debug("matched entry=%s row=%d slot=%s tier=%s", name, row_number, slot.slot_id, tier.value)

    logger.info("archive match: matched=%d unmatched=%d", len(matched), len(unmatched))
    return MatchResult(matched=matched, unmatched=unmatched)
