from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..errors import SizeExceededError, StaleSessionError
from ..models.commit_outcome import CommitOutcome
from ..models.config_models import DocumentsConfig, LimitsConfig
from ..models.documents import AttachedFile, DocumentSlot, FileOrigin, RowDocumentAssignments, SlotId
from ..models.parsed_row import ParsedRow, ParseResult, RowStatus
from ..schema.registry import DEFAULT_REGISTRY, SchemaRegistry
from .commit import EligibleRow
from .documents import (
    GOVERNING_FIELDS,
    missing_required_slots,
    reconcile_assignments,
    resolve_document_slots,
    slot_by_id,
)
from .matcher import (
    ArchiveEntry,
    MatchResult,
    UnmatchedEntry,
    UnmatchedReason,
    match_archive_entries,
    read_archive_entries,
)
from .validator import revalidate

"""Review session: the authoritative row list of one import attempt.

Every mutation re-derives what it affects (row status, document slots, summary)
before returning and persists a JSON snapshot through a SessionStore. Mutations on
the same row are serialized by a per-row lock. Starting a new session claims the
store; the superseded session then raises StaleSessionError on any write.
"""

__all__ = [
    "SNAPSHOT_VERSION",
    "SessionStore",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "ReviewSession",
]

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class SessionStore:
    """Scoped key-value persistence for one session snapshot.

    ``claim`` discards whatever is stored and records the new owner; ``save`` refuses
    snapshots from any other session id.
    """

    def owner(self) -> str | None:
        raise NotImplementedError

    def claim(self, session_id: str) -> None:
        raise NotImplementedError

    def load(self) -> dict[str, Any] | None:
        raise NotImplementedError

    def save(self, snapshot: dict[str, Any]) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError

    def _check_owner(self, session_id: str) -> None:
        current = self.owner()
        if current != session_id:
            raise StaleSessionError(f"session {session_id} was replaced by {current or 'nothing'}")


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._owner: str | None = None
        self._snapshot: str | None = None
        self._lock = threading.Lock()

    def owner(self) -> str | None:
        return self._owner

    def claim(self, session_id: str) -> None:
        with self._lock:
            self._snapshot = None
            self._owner = session_id

    def load(self) -> dict[str, Any] | None:
        # stored serialized so callers never share mutable state with the store
        return json.loads(self._snapshot) if self._snapshot is not None else None

    def save(self, snapshot: dict[str, Any]) -> None:
        with self._lock:
            self._check_owner(snapshot["session_id"])
            self._snapshot = json.dumps(snapshot)

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
            self._owner = None


class JsonFileSessionStore(SessionStore):
    """``<directory>/<slot>.json`` snapshot plus ``<slot>.owner`` claim file."""

    def __init__(self, directory: Path, slot: str) -> None:
        self.directory = Path(directory)
        self.slot = slot
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self.directory / f"{self.slot}.json"

    @property
    def owner_path(self) -> Path:
        return self.directory / f"{self.slot}.owner"

    def _write_atomic(self, target: Path, text: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f"{target.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, target)

    def owner(self) -> str | None:
        try:
            return self.owner_path.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None

    def claim(self, session_id: str) -> None:
        with self._lock:
            self.path.unlink(missing_ok=True)
            self._write_atomic(self.owner_path, session_id)

    def load(self) -> dict[str, Any] | None:
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None

    def save(self, snapshot: dict[str, Any]) -> None:
        with self._lock:
            self._check_owner(snapshot["session_id"])
            self._write_atomic(self.path, json.dumps(snapshot, ensure_ascii=False, indent=1))

    def clear(self) -> None:
        with self._lock:
            self.path.unlink(missing_ok=True)
            self.owner_path.unlink(missing_ok=True)


class ReviewSession:
    """Row list, document assignments, overrides and commit state of one import."""

    def __init__(
        self,
        *,
        session_id: str,
        rows: Iterable[ParsedRow],
        store: SessionStore,
        file_name: str | None = None,
        created_at: str | None = None,
        documents: DocumentsConfig | None = None,
        limits: LimitsConfig | None = None,
        registry: SchemaRegistry = DEFAULT_REGISTRY,
    ) -> None:
        self.session_id = session_id
        self.store = store
        self.file_name = file_name
        self.created_at = created_at or datetime.now(UTC).isoformat().replace("+00:00", "Z")
        self.documents_config = documents or DocumentsConfig()
        self.limits = limits or LimitsConfig()
        self.registry = registry

        self._rows: dict[int, ParsedRow] = {}
        for r in rows:
            if r.row_number in self._rows:
                raise ValueError(f"duplicate row number {r.row_number}")
            self._rows[r.row_number] = r
        self._assignments: dict[int, RowDocumentAssignments] = {
            n: reconcile_assignments(None, self.slots_for(n)) for n in self._rows
        }
        self._overrides: set[int] = set()
        self._committed: dict[int, str] = {}
        self._row_locks = {n: threading.Lock() for n in self._rows}
        self._lock = threading.RLock()

    # -- lifecycle ---------------------------------------------------------

    @classmethod
    def start(cls, result: ParseResult, store: SessionStore, **kwargs: Any) -> ReviewSession:
        """New session for a fresh parse. Discards whatever the store held.

        Args:
            result: ParseResult whose rows become the session's row list
            store: Persistence slot; claiming it makes any earlier session stale
            **kwargs: ``documents``, ``limits`` and ``registry`` overrides

        Returns:
            The started ReviewSession, already persisted
        """
        session = cls(session_id=uuid.uuid4().hex, rows=result.rows, store=store,
                      file_name=result.file_name, **kwargs)
        store.claim(session.session_id)
        session._persist()
        logger.info("session %s started: file=%s rows=%d", session.session_id, result.file_name, len(result.rows))
        return session

    @classmethod
    def resume(cls, store: SessionStore, **kwargs: Any) -> ReviewSession | None:
        """Restore the stored session, or None when nothing is stored.

        Document assignments are reconciled against the restored rows, so slots
        that no longer apply are dropped.

        Args:
            store: Persistence slot holding the snapshot
            **kwargs: ``documents``, ``limits`` and ``registry`` overrides

        Returns:
            ReviewSession owning the stored snapshot, or None

        Raises:
            ValueError: Snapshot written by an unsupported version
        """
        snap = store.load()
        if snap is None:
            return None
        if snap.get("version") != SNAPSHOT_VERSION:
            raise ValueError(f"unsupported session snapshot version: {snap.get('version')}")
        session = cls(
            session_id=snap["session_id"],
            rows=[ParsedRow.from_dict(r) for r in snap["rows"]],
            store=store,
            file_name=snap.get("file_name"),
            created_at=snap.get("created_at"),
            **kwargs,
        )
        for key, raw in snap.get("assignments", {}).items():
            n = int(key)
            if n in session._rows:
                restored = RowDocumentAssignments.from_dict(raw)
                session._assignments[n] = reconcile_assignments(restored, session.slots_for(n))
        session._overrides = {int(n) for n in snap.get("overrides", []) if int(n) in session._rows}
        session._committed = {int(k): str(v) for k, v in snap.get("committed", {}).items()}
        return session

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "version": SNAPSHOT_VERSION,
                "session_id": self.session_id,
                "file_name": self.file_name,
                "created_at": self.created_at,
                "rows": [r.to_dict() for r in self.rows],
                "assignments": {
                    str(n): a.to_dict() for n, a in sorted(self._assignments.items())
                },
                "overrides": sorted(self._overrides),
                "committed": {str(n): cid for n, cid in sorted(self._committed.items())},
            }

    def _persist(self) -> None:
        self.store.save(self.snapshot())

    def _ensure_current(self) -> None:
        if self.store.owner() != self.session_id:
            raise StaleSessionError(f"session {self.session_id} is no longer active")

    def _row_lock(self, row_number: int) -> threading.Lock:
        if row_number not in self._row_locks:
            raise KeyError(f"no row {row_number} in session")
        return self._row_locks[row_number]

    # -- read side ---------------------------------------------------------

    @property
    def rows(self) -> list[ParsedRow]:
        return [self._rows[n] for n in sorted(self._rows)]

    def row(self, row_number: int) -> ParsedRow:
        try:
            return self._rows[row_number]
        except KeyError:
            raise KeyError(f"no row {row_number} in session") from None

    @property
    def summary(self) -> ParseResult:
        return ParseResult.from_rows(self.rows, self.file_name)

    def slots_for(self, row_number: int) -> list[DocumentSlot]:
        return resolve_document_slots(
            self.row(row_number).data,
            require_transfer_certificate=self.documents_config.require_transfer_certificate,
        )

    def assignments(self, row_number: int) -> RowDocumentAssignments:
        self.row(row_number)
        return self._assignments[row_number].copy()

    def missing_documents(self, row_number: int) -> list[DocumentSlot]:
        return missing_required_slots(self.slots_for(row_number), self._assignments[row_number])

    def has_override(self, row_number: int) -> bool:
        return row_number in self._overrides

    @property
    def committed(self) -> dict[int, str]:
        return dict(self._committed)

    def eligible_rows(self, include_invalid: bool = False) -> list[EligibleRow]:
        """Rows that may be submitted now, in row order.

        Invalid rows are excluded unless ``include_invalid``; rows with unmet required
        slots are excluded unless overridden; already committed rows are excluded.
        """
        out: list[EligibleRow] = []
        for r in self.rows:
            n = r.row_number
            if n in self._committed:
                continue
            if r.status is RowStatus.INVALID and not include_invalid:
                continue
            if self.missing_documents(n) and n not in self._overrides:
                continue
            out.append(EligibleRow(row=r, documents=self._assignments[n].assigned()))
        return out

    # -- mutations ---------------------------------------------------------

    def edit_field(self, row_number: int, key: str, value: str) -> ParsedRow:
        """Set one field, re-validate the row and re-resolve its document slots."""
        if key not in self.registry:
            raise KeyError(f"unknown field: {key}")
        with self._row_lock(row_number):
            current = self.row(row_number)
            data = dict(current.data)
            data[key] = value
            updated = revalidate(ParsedRow(row_number, data, current.issues), self.registry)
            with self._lock:
                self._ensure_current()
                self._rows[row_number] = updated
                if key in GOVERNING_FIELDS:
                    self._assignments[row_number] = reconcile_assignments(
                        self._assignments[row_number], self.slots_for(row_number)
                    )
                self._persist()
        logger.debug("row %d: %s edited, status=%s", row_number, key, updated.status.value)
        return updated

    def _check_file(self, attached: AttachedFile) -> None:
        ext = attached.suffix.lstrip(".")
        if ext not in self.documents_config.allowed_extensions:
            raise ValueError(f"{attached.filename}: file type not allowed")
        if attached.size > self.limits.max_document_bytes:
            raise SizeExceededError(attached.filename, attached.size, self.limits.max_document_bytes)

    def assign_document(self, row_number: int, slot_id: SlotId, attached: AttachedFile) -> None:
        """Assign a file to a slot, replacing any earlier file in that slot."""
        self._check_file(attached)
        with self._row_lock(row_number):
            if slot_by_id(self.slots_for(row_number), slot_id) is None:
                raise KeyError(f"row {row_number} has no document slot {slot_id}")
            with self._lock:
                self._ensure_current()
                self._assignments[row_number].assign(slot_id, attached)
                self._persist()
        logger.debug("row %d: %s <- %s (%s)", row_number, slot_id, attached.filename, attached.origin.value)

    def clear_document(self, row_number: int, slot_id: SlotId) -> None:
        with self._row_lock(row_number):
            with self._lock:
                self._ensure_current()
                self._assignments[row_number].clear(slot_id)
                self._persist()

    def set_document_override(self, row_number: int, enabled: bool = True) -> None:
        """Allow (or stop allowing) commit of a row whose required documents are missing."""
        with self._row_lock(row_number):
            with self._lock:
                self._ensure_current()
                if enabled:
                    self._overrides.add(row_number)
                else:
                    self._overrides.discard(row_number)
                self._persist()

    def apply_matches(self, result: MatchResult, archive_path: Path) -> MatchResult:
        """Assign matched archive entries to still-empty slots.

        A slot filled in the meantime keeps its file; the entry is reported as
        SLOT_OCCUPIED instead.
        """
        applied = []
        unmatched = list(result.unmatched)
        for m in result.matched:
            with self._row_lock(m.row_number):
                with self._lock:
                    self._ensure_current()
                    current = self._assignments[m.row_number]
                    if m.slot_id not in current:
                        unmatched.append(UnmatchedEntry(m.entry.filename, UnmatchedReason.NO_SLOT, str(m.slot_id)))
                        continue
                    if current.is_assigned(m.slot_id):
                        unmatched.append(UnmatchedEntry(m.entry.filename, UnmatchedReason.SLOT_OCCUPIED,
                                                        str(m.slot_id)))
                        continue
                    current.assign(m.slot_id, AttachedFile(
                        filename=m.entry.filename,
                        path=str(archive_path),
                        size=m.entry.size,
                        origin=FileOrigin.ARCHIVE,
                        archive_member=m.entry.member,
                    ))
                    applied.append(m)
        with self._lock:
            self._ensure_current()
            self._persist()
        logger.info("archive %s: assigned=%d unmatched=%d", archive_path.name, len(applied), len(unmatched))
        return MatchResult(matched=applied, unmatched=unmatched)

    def match_archive(self, archive_path: Path, entries: list[ArchiveEntry] | None = None) -> MatchResult:
        """List, match and apply a documents archive in one step.

        Args:
            archive_path: ZIP the matched entries are read from at commit time
            entries: Entries already listed by ``read_archive_entries``; listed here when None

        Returns:
            MatchResult of the entries actually assigned, plus every unmatched entry

        Raises:
            SizeExceededError: Archive above ``limits.max_archive_bytes``
            FileUnreadableError: Archive missing, corrupt or incomplete
        """
        if entries is None:
            entries = read_archive_entries(archive_path, max_bytes=self.limits.max_archive_bytes)
        with self._lock:
            rows = self.rows
            slots_by_row = {r.row_number: self.slots_for(r.row_number) for r in rows}
            assignments = {n: a.copy() for n, a in self._assignments.items()}
        result = match_archive_entries(
            entries,
            rows,
            slots_by_row,
            assignments,
            allowed_extensions=self.documents_config.allowed_extensions,
            max_document_bytes=self.limits.max_document_bytes,
        )
        return self.apply_matches(result, archive_path)

    def mark_committed(self, outcomes: Iterable[CommitOutcome]) -> None:
        """Record successful CommitOutcomes so retries skip those rows."""
        with self._lock:
            self._ensure_current()
            for o in outcomes:
                if o.success and o.row_number in self._rows:
                    self._committed[o.row_number] = o.created_id or ""
            self._persist()
