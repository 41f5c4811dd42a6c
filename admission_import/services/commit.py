from __future__ import annotations

import logging
import time
import zipfile
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import CommitErrorKind, CommitRowError, StorageError
from ..models.commit_outcome import CommitOutcome, CommitReport
from ..models.documents import AttachedFile, SlotId
from ..models.error_record import ErrorRecord
from ..models.parsed_row import ParsedRow
from .collaborators import DocumentStorage, StudentCreator
from .normalize import normalize_student_record
from .progress import ProgressTracker

if TYPE_CHECKING:
    from ..logging.error_log import ErrorLogBuffer

"""Commit pipeline: eligible rows -> uploaded documents -> created students.

Every row is isolated: upload and creation failures become a failed CommitOutcome for
that row and the batch carries on. Rows run sequentially by default; ``max_workers``
above 1 uses a bounded thread pool. The report is always ordered by row number.
"""

__all__ = [
    "EligibleRow",
    "document_destination",
    "commit_row",
    "commit_rows",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibleRow:
    row: ParsedRow
    documents: dict[SlotId, AttachedFile] = field(default_factory=dict)


def document_destination(admission_no: str, slot_id: SlotId, filename: str) -> str:
    """Storage key ``students/{admissionNo}/{section}/{slot}{ext}``.

    Deterministic so a retried row overwrites its own earlier uploads.
    """
    ext = Path(filename).suffix.lower()
    return f"students/{admission_no}/{slot_id.section.value}/{slot_id.slot_key}{ext}"


def _failure(item: EligibleRow, admission_no: str, kind: CommitErrorKind, message: str,
             retryable: bool) -> CommitOutcome:
    return CommitOutcome(
        row_number=item.row.row_number,
        success=False,
        admission_no=admission_no,
        error=message,
        error_kind=kind,
        retryable=retryable,
    )


def _upload_documents(item: EligibleRow, admission_no: str,
                      storage: DocumentStorage) -> tuple[dict[str, dict], dict[str, str]]:
    references: dict[str, dict] = {}
    urls: dict[str, str] = {}
    for slot_id, attached in sorted(item.documents.items(), key=lambda kv: str(kv[0])):
        try:
            content = attached.read_bytes()
        except (OSError, KeyError, zipfile.BadZipFile) as e:
            raise StorageError(f"{slot_id}: cannot read {attached.filename}: {e}") from e
        try:
            stored = storage.upload(content, attached.filename,
                                    document_destination(admission_no, slot_id, attached.filename))
        except StorageError as e:
            raise StorageError(f"{slot_id}: {e}") from e
        except (TimeoutError, ConnectionError) as e:
            raise StorageError(f"{slot_id}: {str(e) or type(e).__name__}") from e
        references[str(slot_id)] = stored.to_reference()
        urls[str(slot_id)] = stored.url
    return references, urls


def commit_row(item: EligibleRow, *, creator: StudentCreator, storage: DocumentStorage) -> CommitOutcome:
    """Upload one row's documents and create its student.

    Never raises: every failure, including unexpected ones from the collaborators,
    becomes a failed CommitOutcome for this row.
    """
    row = item.row
    admission_no = row.admission_no or f"row-{row.row_number}"

    try:
        references, urls = _upload_documents(item, admission_no, storage)
    except StorageError as e:
        logger.warning("row %d: document upload failed: %s", row.row_number, e)
        return _failure(item, admission_no, CommitErrorKind.UPLOAD, str(e), True)
    except Exception as e:
        logger.exception("row %d: unexpected upload failure", row.row_number)
        return _failure(item, admission_no, CommitErrorKind.UNEXPECTED, str(e) or type(e).__name__, False)

    try:
        record = normalize_student_record(row.data, references)
        created_id = creator.create_student(record)
    except CommitRowError as e:
        return _failure(item, admission_no, e.kind, str(e), e.retryable)
    except (TimeoutError, ConnectionError) as e:
        return _failure(item, admission_no, CommitErrorKind.TRANSIENT, str(e) or type(e).__name__, True)
    except Exception as e:
        logger.exception("row %d: unexpected commit failure", row.row_number)
        return _failure(item, admission_no, CommitErrorKind.UNEXPECTED, str(e) or type(e).__name__, False)

    logger.debug("row %d: created id=%s", row.row_number, created_id)
    return CommitOutcome(
        row_number=row.row_number,
        success=True,
        admission_no=admission_no,
        created_id=str(created_id),
        documents=urls,
    )


def commit_rows(
    eligible: Sequence[EligibleRow],
    *,
    creator: StudentCreator,
    storage: DocumentStorage,
    error_log: ErrorLogBuffer | None = None,
    max_workers: int = 1,
    file_name: str = "",
) -> CommitReport:
    """Commit every eligible row independently and report per-row outcomes.

    Args:
        eligible: Rows that passed eligibility, with their assigned documents
        creator: Student creation collaborator
        storage: Document upload collaborator
        error_log: Buffer receiving one COMMIT_{KIND} record per failed row
        max_workers: Rows committed in parallel; 1 runs them sequentially
        file_name: Source spreadsheet name recorded in the error log

    Returns:
        CommitReport with one outcome per row, ordered by row number

    A failing row never aborts the batch; see ``commit_row``.
    """
    start = time.perf_counter()
    outcomes: list[CommitOutcome] = []

    with ProgressTracker(len(eligible)) as progress:
        if max_workers <= 1 or len(eligible) <= 1:
            for item in eligible:
                outcome = commit_row(item, creator=creator, storage=storage)
                outcomes.append(outcome)
                progress.finish_row(outcome.row_number, outcome.success)
        else:
            with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="commit") as pool:
                futures = [pool.submit(commit_row, item, creator=creator, storage=storage) for item in eligible]
                for fut in as_completed(futures):
                    outcome = fut.result()
                    outcomes.append(outcome)
                    progress.finish_row(outcome.row_number, outcome.success)

    outcomes.sort(key=lambda o: o.row_number)
    for o in outcomes:
        if o.success:
            continue
        logger.warning("row %d: commit failed (%s): %s", o.row_number, o.error_kind.value if o.error_kind else "-",
                       o.error)
        if error_log is not None:
            kind = o.error_kind.name if o.error_kind else "UNEXPECTED"
            error_log.append(ErrorRecord.create(file_name, o.row_number, f"COMMIT_{kind}", o.error or ""))

    report = CommitReport(outcomes=outcomes, elapsed_seconds=time.perf_counter() - start)
    logger.info("commit finished: succeeded=%d failed=%d", report.succeeded, report.failed)
    return report
