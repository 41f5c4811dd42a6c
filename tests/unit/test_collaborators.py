from __future__ import annotations

import pytest

from admission_import.errors import StorageError
from admission_import.services.collaborators import (
    DryRunDocumentStorage,
    DryRunStudentCreator,
    LocalDirectoryStorage,
)


def test_local_storage_writes_and_overwrites(tmp_path):
    storage = LocalDirectoryStorage(tmp_path / "uploads")
    first = storage.upload(b"one", "a.jpg", "students/S1/student/photo.jpg")
    storage.upload(b"second", "b.jpg", "students/S1/student/photo.jpg")

    target = tmp_path / "uploads" / "students" / "S1" / "student" / "photo.jpg"
    assert target.read_bytes() == b"second"
    assert first.url == target.resolve().as_uri()
    assert first.to_reference()["fileName"] == "a.jpg"
    assert first.uploaded_at.endswith("Z")
    assert storage.exists("students/S1/student/photo.jpg")

    storage.delete("students/S1/student/photo.jpg")
    assert not storage.exists("students/S1/student/photo.jpg")


def test_local_storage_base_url(tmp_path):
    storage = LocalDirectoryStorage(tmp_path, base_url="https://files.example.org/docs/")
    stored = storage.upload(b"x", "a.pdf", "students/S1/father/aadhar.pdf")
    assert stored.url == "https://files.example.org/docs/students/S1/father/aadhar.pdf"


def test_local_storage_rejects_escape(tmp_path):
    storage = LocalDirectoryStorage(tmp_path / "uploads")
    with pytest.raises(StorageError):
        storage.upload(b"x", "a.jpg", "../outside.jpg")


def test_dry_run_collaborators():
    creator = DryRunStudentCreator()
    assert creator.create_student({"admissionNumber": "A"}) == "dry-run-1"
    assert creator.create_student({"admissionNumber": "B"}) == "dry-run-2"
    assert [r["admissionNumber"] for r in creator.records] == ["A", "B"]

    storage = DryRunDocumentStorage()
    stored = storage.upload(b"abc", "a.jpg", "k/a.jpg")
    assert stored.url == "dry-run://k/a.jpg"
    assert stored.size == 3
    assert storage.exists("k/a.jpg")
    storage.delete("k/a.jpg")
    assert not storage.exists("k/a.jpg")
