from __future__ import annotations

import threading
from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import ErrorRecord
from ..models.parsed_row import ParsedRow

"""Error log buffering.

- JSON Lines, fixed schema (see ErrorRecord)
- One file per run: ``logs/errors-YYYYMMDD-HHMMSS.log`` (UTC), created on first flush
  that has records
- Records are buffered and written by flush(); append() is thread safe
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "append_row_issues",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush appends JSON Lines."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self.logs_dir = logs_dir or LOGS_DIR
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self.logs_dir / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        with self._lock:
            return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        with self._lock:
            self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records. Returns the file written, or None when empty."""
        with self._lock:
            if not self._records:
                return None
            fp = self.file_path
            fp.parent.mkdir(parents=True, exist_ok=True)
            with fp.open("a", encoding="utf-8") as f:
                for r in self._records:
                    f.write(r.to_json_line() + "\n")
            self._records.clear()
            return fp


def append_row_issues(buffer: ErrorLogBuffer, file_name: str, rows: list[ParsedRow]) -> int:
    """Buffer one record per validation issue. Returns the number appended."""
    count = 0
    for row in rows:
        for issue in row.issues:
            buffer.append(ErrorRecord.create(
                file=file_name,
                row=row.row_number,
                error_type=f"VALIDATION_{issue.severity.name}",
                message=issue.message,
                field=issue.field_key,
            ))
            count += 1
    return count
