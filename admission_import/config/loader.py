from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..errors import ConfigError
from ..models.config_models import (
    DEFAULT_ALLOWED_EXTENSIONS,
    DEFAULT_MAX_ARCHIVE_MB,
    DEFAULT_MAX_DOCUMENT_MB,
    DEFAULT_MAX_SPREADSHEET_MB,
    DEFAULT_SESSION_SLOT,
    MB,
    CommitConfig,
    DatabaseConfig,
    DocumentsConfig,
    ImportConfig,
    LimitsConfig,
    SessionConfig,
    StorageConfig,
)

"""Config loader.

Responsibilities:
- Load YAML (config/import.yml by default)
- Validate against the packaged import_schema.json (unknown keys rejected)
- Apply defaults for every omitted section or key (timezone=UTC)
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "config_from_dict",
]

DEFAULT_CONFIG_PATH = Path("config/import.yml")
SCHEMA_PATH = Path(__file__).with_name("import_schema.json")


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or not valid JSON, or data fails validation
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        where = ".".join(str(p) for p in e.absolute_path)
        raise ConfigError(f"config validation failed{' at ' + where if where else ''}: {e.message}") from e


def _mb(raw: dict[str, Any], key: str, default: float) -> int:
    return int(float(raw.get(key, default)) * MB)


def config_from_dict(data: dict[str, Any]) -> ImportConfig:
    _validate_config_schema(data)

    limits_raw = data.get("limits") or {}
    docs_raw = data.get("documents") or {}
    session_raw = data.get("session") or {}
    storage_raw = data.get("storage") or {}
    commit_raw = data.get("commit") or {}
    db_raw = data.get("database") or {}

    extensions = docs_raw.get("allowed_extensions")
    return ImportConfig(
        limits=LimitsConfig(
            max_spreadsheet_bytes=_mb(limits_raw, "max_spreadsheet_mb", DEFAULT_MAX_SPREADSHEET_MB),
            max_archive_bytes=_mb(limits_raw, "max_archive_mb", DEFAULT_MAX_ARCHIVE_MB),
            max_document_bytes=_mb(limits_raw, "max_document_mb", DEFAULT_MAX_DOCUMENT_MB),
        ),
        documents=DocumentsConfig(
            require_transfer_certificate=docs_raw.get("require_transfer_certificate", True),
            allowed_extensions=(
                frozenset(e.lower().lstrip(".") for e in extensions) if extensions else DEFAULT_ALLOWED_EXTENSIONS
            ),
        ),
        session=SessionConfig(
            directory=session_raw.get("directory", SessionConfig.directory),
            slot=session_raw.get("slot", DEFAULT_SESSION_SLOT),
        ),
        storage=StorageConfig(
            directory=storage_raw.get("directory", StorageConfig.directory),
            base_url=storage_raw.get("base_url"),
        ),
        commit=CommitConfig(
            include_invalid=commit_raw.get("include_invalid", False),
            max_workers=commit_raw.get("max_workers", 1),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
            table=db_raw.get("table", "students"),
        ),
        timezone=data.get("timezone", "UTC"),
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH, *, required: bool = True) -> ImportConfig:
    """Load and validate a YAML config file.

    With ``required=False`` a missing file yields the defaults.
    """
    if not path.exists():
        if required:
            raise ConfigError(f"config file not found: {path}")
        return ImportConfig()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    return config_from_dict(data)
