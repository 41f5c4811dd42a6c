from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the bulk admission import tool.

The loader in admission_import.config.loader builds these from YAML. Defaults here are
the values used when a section or key is omitted.
"""

MB = 1024 * 1024

DEFAULT_MAX_SPREADSHEET_MB = 10
DEFAULT_MAX_ARCHIVE_MB = 50
DEFAULT_MAX_DOCUMENT_MB = 5
DEFAULT_ALLOWED_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "pdf", "doc", "docx"})
DEFAULT_SESSION_SLOT = "bulk_import_rows"


@dataclass(frozen=True)
class LimitsConfig:
    """Size limits enforced before parsing. Stored in bytes."""
    max_spreadsheet_bytes: int = DEFAULT_MAX_SPREADSHEET_MB * MB
    max_archive_bytes: int = DEFAULT_MAX_ARCHIVE_MB * MB
    max_document_bytes: int = DEFAULT_MAX_DOCUMENT_MB * MB


@dataclass(frozen=True)
class DocumentsConfig:
    require_transfer_certificate: bool = True
    allowed_extensions: frozenset[str] = DEFAULT_ALLOWED_EXTENSIONS


@dataclass(frozen=True)
class SessionConfig:
    directory: str = "./.import_session"
    slot: str = DEFAULT_SESSION_SLOT


@dataclass(frozen=True)
class StorageConfig:
    directory: str = "./uploads"
    base_url: str | None = None  # None -> file:// URLs of the stored files


@dataclass(frozen=True)
class CommitConfig:
    include_invalid: bool = False
    max_workers: int = 1


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback. Environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None
    table: str = "students"


@dataclass(frozen=True)
class ImportConfig:
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    documents: DocumentsConfig = field(default_factory=DocumentsConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    commit: CommitConfig = field(default_factory=CommitConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    timezone: str = "UTC"
