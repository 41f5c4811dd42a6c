from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, load_config
from ..db.student_writer import PostgresStudentCreator
from ..errors import BulkImportError, ConfigError, StaleSessionError
from ..excel.errors_report import write_error_report
from ..excel.reader import parse_import_file
from ..excel.template import save_template
from ..logging.error_log import ErrorLogBuffer, append_row_issues
from ..logging.init import log_summary, setup_logging
from ..models.config_models import ImportConfig
from ..models.documents import AttachedFile, DocumentSection, FileOrigin, SlotId
from ..models.error_record import ErrorRecord
from ..services.collaborators import (
    DryRunDocumentStorage,
    DryRunStudentCreator,
    LocalDirectoryStorage,
)
from ..services.commit import commit_rows
from ..services.matcher import MatchResult, read_archive_entries
from ..services.session import JsonFileSessionStore, ReviewSession
from ..services.summary import render_commit_summary, render_parse_summary

"""CLI entrypoint: ``python -m admission_import <command>``.

Each command loads config, resumes (or starts) the review session stored under
``session.directory`` and exits with:
- 0 success
- 2 partial failure (invalid rows after parse, failed rows after commit)
- 1 fatal (config, unreadable input, no session, stale session, bad arguments)
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

logger = logging.getLogger("admission_import.cli")


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 connection for the student writer.

    Connection values, first match wins:
        1. DATABASE_URL / PGDSN (after .env has been loaded), else config ``database.dsn``
        2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. config ``database`` section
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    conn.autocommit = False  # one transaction per student row
    try:
        yield conn
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env so its PostgreSQL settings win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="admission_import", description="Bulk student admission import")
    p.add_argument("--config", type=Path, default=None, help=f"Config YAML (default {DEFAULT_CONFIG_PATH})")
    p.add_argument("--env-file", type=Path, default=Path(".env"), help="dotenv file with DB settings")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    t = sub.add_parser("template", help="Write the import template")
    t.add_argument("--output-dir", type=Path, default=Path("."))
    t.add_argument("--no-example", action="store_true", help="Leave out the example row")

    ps = sub.add_parser("parse", help="Parse a filled template and start a review session")
    ps.add_argument("file", type=Path)
    ps.add_argument("--archive", type=Path, default=None, help="Documents ZIP to match")
    ps.add_argument("--errors-report", type=Path, default=None, help="Write invalid/warning rows to .xlsx")

    sub.add_parser("status", help="Show the current session")

    e = sub.add_parser("edit", help="Change one field of a row")
    e.add_argument("row", type=int)
    e.add_argument("field")
    e.add_argument("value")

    a = sub.add_parser("attach", help="Attach a file to a document slot")
    a.add_argument("row", type=int)
    a.add_argument("section", choices=[s.value for s in DocumentSection])
    a.add_argument("slot")
    a.add_argument("file", type=Path)
    a.add_argument("--capture", action="store_true", help="File comes from a capture device")

    d = sub.add_parser("detach", help="Clear a document slot")
    d.add_argument("row", type=int)
    d.add_argument("section", choices=[s.value for s in DocumentSection])
    d.add_argument("slot")

    o = sub.add_parser("override", help="Allow commit without required documents")
    o.add_argument("row", type=int)
    o.add_argument("state", choices=["on", "off"])

    m = sub.add_parser("match", help="Match a documents ZIP against the session rows")
    m.add_argument("archive", type=Path)

    c = sub.add_parser("commit", help="Create students for eligible rows")
    c.add_argument("--include-invalid", action="store_true")
    c.add_argument("--dry-run", action="store_true", help="Do not write documents or students")
    c.add_argument("--workers", type=int, default=None, help="Rows committed in parallel")
    return p.parse_args(argv)


def _store(cfg: ImportConfig) -> JsonFileSessionStore:
    return JsonFileSessionStore(Path(cfg.session.directory), cfg.session.slot)


def _session_kwargs(cfg: ImportConfig) -> dict[str, Any]:
    return {"documents": cfg.documents, "limits": cfg.limits}


def _resume(cfg: ImportConfig) -> ReviewSession:
    session = ReviewSession.resume(_store(cfg), **_session_kwargs(cfg))
    if session is None:
        raise LookupError("no import session; run `parse FILE` first")
    return session


def _error_type(e: Exception) -> str:
    """FileUnreadableError -> FILE_UNREADABLE"""
    name = re.sub(r"Error$", "", type(e).__name__)
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).upper()


def _print_match(result: MatchResult) -> None:
    for m in result.matched:
        print(f"MATCHED {m.entry.filename} -> row {m.row_number} {m.slot_id} ({m.tier.value})")
    for u in result.unmatched:
        detail = f" ({u.detail})" if u.detail else ""
        print(f"UNMATCHED {u.filename}: {u.reason.value}{detail}")


def _print_row(session: ReviewSession, row_number: int) -> None:
    row = session.row(row_number)
    missing = [str(s.slot_id) for s in session.missing_documents(row_number)]
    flags = []
    if row_number in session.committed:
        flags.append(f"committed={session.committed[row_number]}")
    if session.has_override(row_number):
        flags.append("override")
    print(f"ROW {row_number} {row.status.value} admission={row.admission_no or '-'} "
          f"missing_docs={','.join(missing) or '-'} {' '.join(flags)}".rstrip())
    for issue in row.issues:
        print(f"  {issue.severity.value}: {issue.field_key}: {issue.message}")


def _cmd_template(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    path = save_template(args.output_dir, include_example=not args.no_example)
    print(path)
    return EXIT_SUCCESS_ALL


def _log_unmatched(errors: ErrorLogBuffer, archive: Path, result: MatchResult) -> None:
    for u in result.unmatched:
        errors.append(ErrorRecord.create(archive.name, -1, f"UNMATCHED_{u.reason.name}", u.detail, u.filename))


def _parse_failed(errors: ErrorLogBuffer, path: Path, e: BulkImportError) -> int:
    errors.append(ErrorRecord.create(path.name, -1, _error_type(e), str(e)))
    retry = " (retry after the file is fully available)" if getattr(e, "retryable", False) else ""
    logger.error(f"parse: {e}{retry}")
    return EXIT_FATAL


def _cmd_parse(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    # both files pass their checks before the stored session is replaced
    entries = None
    if args.archive is not None:
        try:
            entries = read_archive_entries(args.archive, max_bytes=cfg.limits.max_archive_bytes)
        except BulkImportError as e:
            return _parse_failed(errors, args.archive, e)
    try:
        result = parse_import_file(args.file, max_bytes=cfg.limits.max_spreadsheet_bytes)
    except BulkImportError as e:
        return _parse_failed(errors, args.file, e)

    session = ReviewSession.start(result, _store(cfg), **_session_kwargs(cfg))
    append_row_issues(errors, result.file_name or args.file.name, result.rows)
    if args.archive is not None:
        matches = session.match_archive(args.archive.resolve(), entries)
        _print_match(matches)
        _log_unmatched(errors, args.archive, matches)
    if args.errors_report is not None:
        write_error_report(result.rows, args.errors_report)
    for row in session.rows:
        _print_row(session, row.row_number)
    log_summary(render_parse_summary(session.summary)[len("SUMMARY "):])
    return EXIT_PARTIAL_FAILURE if result.invalid_rows else EXIT_SUCCESS_ALL


def _cmd_status(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    session = _resume(cfg)
    for row in session.rows:
        _print_row(session, row.row_number)
    eligible = session.eligible_rows(cfg.commit.include_invalid)
    logger.info(f"eligible={len(eligible)} committed={len(session.committed)}")
    log_summary(render_parse_summary(session.summary)[len("SUMMARY "):])
    return EXIT_SUCCESS_ALL


def _cmd_edit(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    session = _resume(cfg)
    session.edit_field(args.row, args.field, args.value)
    _print_row(session, args.row)
    return EXIT_SUCCESS_ALL


def _cmd_attach(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    session = _resume(cfg)
    if not args.file.is_file():
        logger.error(f"attach: file not found: {args.file}")
        return EXIT_FATAL
    origin = FileOrigin.CAPTURE if args.capture else FileOrigin.MANUAL
    attached = AttachedFile.from_path(args.file.resolve(), origin)
    session.assign_document(args.row, SlotId(DocumentSection(args.section), args.slot), attached)
    _print_row(session, args.row)
    return EXIT_SUCCESS_ALL


def _cmd_detach(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    session = _resume(cfg)
    session.clear_document(args.row, SlotId(DocumentSection(args.section), args.slot))
    _print_row(session, args.row)
    return EXIT_SUCCESS_ALL


def _cmd_override(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    session = _resume(cfg)
    session.set_document_override(args.row, args.state == "on")
    _print_row(session, args.row)
    return EXIT_SUCCESS_ALL


def _cmd_match(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    session = _resume(cfg)
    result = session.match_archive(args.archive.resolve())
    _print_match(result)
    _log_unmatched(errors, args.archive, result)
    return EXIT_SUCCESS_ALL


def _cmd_commit(args: argparse.Namespace, cfg: ImportConfig, errors: ErrorLogBuffer) -> int:
    session = _resume(cfg)
    include_invalid = args.include_invalid or cfg.commit.include_invalid
    workers = args.workers or cfg.commit.max_workers
    eligible = session.eligible_rows(include_invalid)
    skipped = len(session.rows) - len(session.committed) - len(eligible)
    logger.info(f"eligible={len(eligible)} skipped={skipped} already_committed={len(session.committed)}")

    if args.dry_run:
        report = commit_rows(eligible, creator=DryRunStudentCreator(), storage=DryRunDocumentStorage(),
                             error_log=errors, max_workers=workers, file_name=session.file_name or "")
        logger.info("mode=dry-run (session not updated)")
    else:
        storage = LocalDirectoryStorage(Path(cfg.storage.directory), cfg.storage.base_url)
        try:
            with _db_connection(cfg) as conn:
                creator = PostgresStudentCreator(conn, cfg.database.table)
                creator.ensure_table()
                report = commit_rows(eligible, creator=creator, storage=storage, error_log=errors,
                                     max_workers=workers, file_name=session.file_name or "")
        except psycopg2.Error as e:
            logger.error(f"commit: database unavailable: {e}")
            return EXIT_FATAL
        session.mark_committed(report.outcomes)
        logger.info("mode=live")

    for o in report.failures:
        kind = o.error_kind.value if o.error_kind else "-"
        print(f"FAILED row {o.row_number} ({kind}{', retryable' if o.retryable else ''}): {o.error}")
    log_summary(render_commit_summary(report)[len("SUMMARY "):])
    return EXIT_PARTIAL_FAILURE if report.failed else EXIT_SUCCESS_ALL


COMMANDS = {
    "template": _cmd_template,
    "parse": _cmd_parse,
    "status": _cmd_status,
    "edit": _cmd_edit,
    "attach": _cmd_attach,
    "detach": _cmd_detach,
    "override": _cmd_override,
    "match": _cmd_match,
    "commit": _cmd_commit,
}


def main(argv: list[str] | None = None) -> int:
    app_logger = setup_logging()
    # Only read sys.argv when no list was given; [] must stay empty
    if argv is None:
        argv = sys.argv[1:]
    try:
        args = _parse_args(argv)
    except SystemExit as e:
        # bad usage is fatal here; argparse itself exits 2
        return EXIT_SUCCESS_ALL if e.code in (0, None) else EXIT_FATAL
    if args.debug:
        setup_logging(debug=True)
        app_logger.debug("debug mode enabled")

    _load_env_file(args.env_file, override=True)
    try:
        cfg = load_config(args.config or DEFAULT_CONFIG_PATH, required=args.config is not None)
    except ConfigError as e:
        app_logger.error(f"config: {e}")
        return EXIT_FATAL

    errors = ErrorLogBuffer()
    try:
        return COMMANDS[args.command](args, cfg, errors)
    except StaleSessionError as e:
        app_logger.error(f"session: {e}; run `status` to see the current import")
        return EXIT_FATAL
    except LookupError as e:
        app_logger.error(f"{args.command}: {e.args[0] if e.args else e}")
        return EXIT_FATAL
    except (ValueError, BulkImportError) as e:
        app_logger.error(f"{args.command}: {e}")
        return EXIT_FATAL
    finally:
        written = errors.flush()
        if written is not None:
            app_logger.info(f"error log: {written}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
