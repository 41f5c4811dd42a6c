from __future__ import annotations

from enum import Enum

"""Error taxonomy for the bulk admission import pipeline.

File-level errors (ParseError family, SizeExceededError) abort an import attempt.
Row-level errors (CommitRowError family, StorageError) are captured per row by the
commit pipeline and never abort a batch.
"""

__all__ = [
    "BulkImportError",
    "ParseError",
    "UnsupportedFormatError",
    "FileUnreadableError",
    "EmptySheetError",
    "SchemaMismatchError",
    "SizeExceededError",
    "StorageError",
    "CommitErrorKind",
    "CommitRowError",
    "CommitTransportError",
    "StaleSessionError",
    "ConfigError",
]


class BulkImportError(Exception):
    """Base exception for the import pipeline."""


class ParseError(BulkImportError):
    """The uploaded spreadsheet could not be turned into records."""

    retryable = False


class UnsupportedFormatError(ParseError):
    pass


class FileUnreadableError(ParseError):
    """File is locked, corrupt or not fully synced yet. Re-select and retry."""

    retryable = True


class EmptySheetError(ParseError):
    pass


class SchemaMismatchError(ParseError):
    """Header row is incompatible with the template (required columns missing)."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"required columns missing: {', '.join(self.missing)}")


class SizeExceededError(BulkImportError):
    """Rejected before parsing because the file is larger than the configured limit."""

    def __init__(self, name: str, size: int, limit: int) -> None:
        self.name = name
        self.size = size
        self.limit = limit
        super().__init__(f"{name}: {size} bytes exceeds limit of {limit} bytes")


class StorageError(BulkImportError):
    """Document upload collaborator failed."""


class CommitErrorKind(Enum):
    REJECTED = "rejected"
    DUPLICATE = "duplicate"
    TRANSIENT = "transient"
    UPLOAD = "upload"
    UNEXPECTED = "unexpected"


class CommitRowError(BulkImportError):
    """Creation collaborator refused one row."""

    retryable = False

    def __init__(self, message: str, kind: CommitErrorKind = CommitErrorKind.REJECTED) -> None:
        self.kind = kind
        super().__init__(message)


class CommitTransportError(CommitRowError):
    """Network failure or timeout talking to the creation collaborator."""

    retryable = True

    def __init__(self, message: str) -> None:
        super().__init__(message, CommitErrorKind.TRANSIENT)


class StaleSessionError(BulkImportError):
    """A newer import session has replaced this one."""


class ConfigError(BulkImportError):
    """Configuration file missing, unparsable or failing schema validation."""
