from __future__ import annotations

import io
import time

import pandas as pd
import pytest

from admission_import.excel.reader import parse_import_file
from admission_import.excel.template import EXAMPLE_ROW
from admission_import.schema.registry import DEFAULT_REGISTRY
from admission_import.services.documents import resolve_document_slots
from admission_import.services.matcher import match_archive_entries

"""Performance smoke tests: a full-size batch parses and matches well within interactive time."""

ROWS = 1000
DOCUMENT_NAMES = ["Photo", "Aadhar", "Father_Photo", "Father_Aadhar", "Mother_Photo", "Mother_Aadhar"]


@pytest.fixture(scope="module")
def batch_csv() -> bytes:
    df = pd.DataFrame([EXAMPLE_ROW] * ROWS, columns=DEFAULT_REGISTRY.keys).fillna("")
    df["admissionNo"] = [f"STU-2025-{i:05d}" for i in range(1, ROWS + 1)]
    df = df.rename(columns={f.key: f.label for f in DEFAULT_REGISTRY.fields})
    return df.to_csv(index=False).encode("utf-8")


def test_parse_throughput(batch_csv: bytes):
    start = time.perf_counter()
    result = parse_import_file(io.BytesIO(batch_csv), name="batch.csv")
    elapsed = time.perf_counter() - start

    assert result.total_rows == ROWS
    assert result.valid_rows == ROWS
    # lenient so CI stays green on slow runners
    assert elapsed < 10.0, f"parse too slow: {elapsed:.3f}s"


def test_match_throughput(batch_csv: bytes):
    rows = parse_import_file(io.BytesIO(batch_csv), name="batch.csv").rows
    slots = {r.row_number: resolve_document_slots(r.data) for r in rows}
    names = [f"{r.admission_no}_{n}.jpg" for r in rows for n in DOCUMENT_NAMES]

    start = time.perf_counter()
    result = match_archive_entries(names, rows, slots)
    elapsed = time.perf_counter() - start

    assert len(result.matched) == len(names)
    assert result.unmatched == []
    assert elapsed < 10.0, f"matching too slow: {elapsed:.3f}s"
