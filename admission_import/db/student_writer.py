from __future__ import annotations

import logging
import threading
from typing import Any

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2 import sql
from psycopg2.extras import Json

from ..errors import CommitErrorKind, CommitRowError, CommitTransportError

"""PostgreSQL student writer (StudentCreator implementation).

Each student is one INSERT in its own transaction: a failing row is rolled back and
reported without touching rows committed before it. The nested record is stored as
jsonb next to the admission number, which is unique.

Writes through one connection are serialized; commit workers above 1 still overlap
their document uploads.
"""

__all__ = [
    "PostgresStudentCreator",
    "create_table_sql",
]

logger = logging.getLogger(__name__)


def _table_identifier(table: str) -> sql.Composable:
    return sql.Identifier(*table.split("."))


def create_table_sql(table: str) -> sql.Composed:
    return sql.SQL(
        "CREATE TABLE IF NOT EXISTS {} ("
        "id BIGSERIAL PRIMARY KEY, "
        "admission_no TEXT NOT NULL UNIQUE, "
        "record JSONB NOT NULL, "
        "created_at TIMESTAMPTZ NOT NULL DEFAULT now())"
    ).format(_table_identifier(table))


class PostgresStudentCreator:
    def __init__(self, connection: Any, table: str = "students") -> None:
        self.connection = connection
        self.table = table
        self._lock = threading.Lock()
        self._insert = sql.SQL("INSERT INTO {} (admission_no, record) VALUES (%s, %s) RETURNING id").format(
            _table_identifier(table)
        )

    def ensure_table(self) -> None:
        with self._lock:
            with self.connection.cursor() as cur:
                cur.execute(create_table_sql(self.table))
            self.connection.commit()

    def create_student(self, record: dict[str, Any]) -> str:
        admission_no = record.get("admissionNumber") or ""
        if not admission_no:
            raise CommitRowError("admission number is missing", CommitErrorKind.REJECTED)
        with self._lock:
            try:
                with self.connection.cursor() as cur:
                    cur.execute(self._insert, (admission_no, Json(record)))
                    (created_id,) = cur.fetchone()
                self.connection.commit()
            except pg_errors.UniqueViolation as e:
                self._rollback()
                raise CommitRowError(f"admission number {admission_no} already exists",
                                     CommitErrorKind.DUPLICATE) from e
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
                self._rollback()
                raise CommitTransportError(f"database unavailable: {e}") from e
            except psycopg2.Error as e:
                self._rollback()
                raise CommitRowError(f"database rejected row: {e}".strip()) from e
        logger.debug("inserted student admission_no=%s id=%s", admission_no, created_id)
        return str(created_id)

    def _rollback(self) -> None:
        try:
            self.connection.rollback()
        except psycopg2.Error as e:  # connection already gone
            logger.debug("rollback failed: %s", e)
