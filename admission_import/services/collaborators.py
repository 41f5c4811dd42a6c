from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from ..errors import StorageError

"""External collaborator interfaces and their local adapters.

DocumentStorage uploads a document and returns a stable reference. StudentCreator
turns a normalized student record into a durable record and returns its id. The
PostgreSQL creator lives in admission_import.db.student_writer.
"""

__all__ = [
    "StoredDocument",
    "DocumentStorage",
    "LocalDirectoryStorage",
    "StudentCreator",
    "DryRunStudentCreator",
    "DryRunDocumentStorage",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredDocument:
    url: str
    key: str
    filename: str
    size: int
    uploaded_at: str

    def to_reference(self) -> dict[str, Any]:
        """Document reference embedded in the student record."""
        return {
            "fileName": self.filename,
            "url": self.url,
            "key": self.key,
            "size": self.size,
            "uploadedAt": self.uploaded_at,
        }


class DocumentStorage(Protocol):
    def upload(self, content: bytes, filename: str, destination: str) -> StoredDocument:
        """Store ``content`` under ``destination``. Raises StorageError on failure."""
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...


class StudentCreator(Protocol):
    def create_student(self, record: dict[str, Any]) -> str:
        """Create one student. Raises CommitRowError / CommitTransportError."""
        ...


class LocalDirectoryStorage:
    """Stores documents below a local directory (shared drive, mounted bucket)."""

    def __init__(self, directory: Path, base_url: str | None = None) -> None:
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/") if base_url else None

    def _target(self, key: str) -> Path:
        root = self.directory.resolve()
        target = (root / key).resolve()
        if not target.is_relative_to(root):
            raise StorageError(f"destination escapes storage directory: {key}")
        return target

    def upload(self, content: bytes, filename: str, destination: str) -> StoredDocument:
        target = self._target(destination)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            raise StorageError(f"failed storing {filename}: {e}") from e
        url = f"{self.base_url}/{destination}" if self.base_url else target.as_uri()
        logger.debug("stored document key=%s size=%d", destination, len(content))
        return StoredDocument(
            url=url,
            key=destination,
            filename=filename,
            size=len(content),
            uploaded_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        )

    def exists(self, key: str) -> bool:
        return self._target(key).exists()

    def delete(self, key: str) -> None:
        target = self._target(key)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"failed deleting {key}: {e}") from e


class DryRunStudentCreator:
    """Mock-mode creator: records what would be created and hands out fake ids."""

    def __init__(self, prefix: str = "dry-run") -> None:
        self.prefix = prefix
        self.records: list[dict[str, Any]] = []
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def create_student(self, record: dict[str, Any]) -> str:
        with self._lock:
            self.records.append(record)
            return f"{self.prefix}-{next(self._counter)}"


class DryRunDocumentStorage:
    """Mock-mode storage: nothing is written, references use the dry-run:// scheme."""

    def __init__(self) -> None:
        self.keys: list[str] = []
        self._lock = threading.Lock()

    def upload(self, content: bytes, filename: str, destination: str) -> StoredDocument:
        with self._lock:
            self.keys.append(destination)
        return StoredDocument(
            url=f"dry-run://{destination}",
            key=destination,
            filename=filename,
            size=len(content),
            uploaded_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        )

    def exists(self, key: str) -> bool:
        return key in self.keys

    def delete(self, key: str) -> None:
        with self._lock:
            if key in self.keys:
                self.keys.remove(key)
