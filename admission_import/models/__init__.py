"""Domain models for the bulk admission import pipeline."""

from .commit_outcome import CommitOutcome, CommitReport
from .config_models import ImportConfig
from .documents import (
    AttachedFile,
    DocumentSection,
    DocumentSlot,
    FileOrigin,
    RowDocumentAssignments,
    SlotId,
)
from .field_spec import FieldFormat, FieldSpec, FieldType
from .parsed_row import ParsedRow, ParseResult, RawRecord, RowStatus, Severity, ValidationIssue

__all__ = [
    # Schema
    "FieldFormat",
    "FieldSpec",
    "FieldType",
    # Rows
    "ParsedRow",
    "ParseResult",
    "RawRecord",
    "RowStatus",
    "Severity",
    "ValidationIssue",
    # Documents
    "AttachedFile",
    "DocumentSection",
    "DocumentSlot",
    "FileOrigin",
    "RowDocumentAssignments",
    "SlotId",
    # Commit / config
    "CommitOutcome",
    "CommitReport",
    "ImportConfig",
]
