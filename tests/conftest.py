# Shared pytest fixtures
from __future__ import annotations

import zipfile
from pathlib import Path

import pytest
from openpyxl import Workbook

from admission_import.excel.template import EXAMPLE_ROW
from admission_import.logging.init import reset_logging
from admission_import.models.parsed_row import RawRecord
from admission_import.schema.registry import DEFAULT_REGISTRY
from admission_import.services.session import InMemorySessionStore, ReviewSession
from admission_import.services.validator import validate_row


@pytest.fixture()
def temp_workdir(monkeypatch, tmp_path: Path) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    monkeypatch.chdir(tmp_path)
    # keep DB settings of the developer machine out of CLI tests
    for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """limits:
  max_spreadsheet_mb: 2
  max_archive_mb: 5
  max_document_mb: 1
documents:
  require_transfer_certificate: true
  allowed_extensions: [jpg, png, pdf]
session:
  directory: ./.session
  slot: test_rows
storage:
  directory: ./uploads
commit:
  include_invalid: false
  max_workers: 1
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
  table: students
timezone: UTC
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def valid_values() -> dict[str, str]:
    """Field values of one warning-free student."""
    return dict(EXAMPLE_ROW)


@pytest.fixture()
def make_row(valid_values):
    """Factory: validated ParsedRow from the valid values plus overrides."""
    def _make(row_number: int = 2, **overrides: str):
        values = dict(valid_values)
        values.update(overrides)
        return validate_row(RawRecord(row_number, values))
    return _make


@pytest.fixture()
def make_workbook(tmp_path: Path):
    """Factory: .xlsx with registry labels as headers and one line per dict."""
    def _make(rows: list[dict[str, str]], *, name: str = "batch.xlsx", sheet: str = "Students",
              headers: list[str] | None = None, leading_rows: list[list[str]] | None = None) -> Path:
        wb = Workbook()
        ws = wb.active
        ws.title = sheet
        for line in leading_rows or []:
            ws.append(line)
        keys = headers or DEFAULT_REGISTRY.keys
        ws.append([DEFAULT_REGISTRY[k].label for k in keys])
        for r in rows:
            ws.append([r.get(k, "") or None for k in keys])
        path = tmp_path / name
        wb.save(path)
        return path
    return _make


@pytest.fixture()
def make_zip(tmp_path: Path):
    """Factory: ZIP archive with small entries (name -> bytes)."""
    def _make(entries: dict[str, bytes], name: str = "docs.zip") -> Path:
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as zf:
            for member, content in entries.items():
                zf.writestr(member, content)
        return path
    return _make


@pytest.fixture()
def make_session(make_row):
    """Factory: ReviewSession over rows built with make_row, in-memory store."""
    def _make(*row_overrides: dict[str, str], store: InMemorySessionStore | None = None, **kwargs):
        from admission_import.models.parsed_row import ParseResult

        rows = [
            make_row(2 + i, **{"admissionNo": f"STU-2025-{2 + i:05d}", **ov})
            for i, ov in enumerate(row_overrides or ({},))
        ]
        result = ParseResult.from_rows(rows, file_name="batch.xlsx")
        return ReviewSession.start(result, store or InMemorySessionStore(), **kwargs)
    return _make
