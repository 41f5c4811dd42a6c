from __future__ import annotations

import pytest

from admission_import.models.field_spec import FieldType
from admission_import.schema.registry import DEFAULT_REGISTRY, FIELDS, SchemaRegistry, is_yes, normalize_label


def test_field_keys_and_labels_unique():
    keys = [f.key for f in FIELDS]
    labels = [normalize_label(f.label) for f in FIELDS]
    assert len(keys) == len(set(keys))
    assert len(labels) == len(set(labels))


def test_duplicate_keys_rejected():
    with pytest.raises(ValueError):
        SchemaRegistry([FIELDS[0], FIELDS[0]])


@pytest.mark.parametrize("header", ["First Name *", "first name", "FIRST NAME*", "First\nName *", " firstName "])
def test_key_for_header_ignores_case_markers_and_whitespace(header):
    assert DEFAULT_REGISTRY.key_for_header(header) == "firstName"


def test_key_for_header_unknown_and_blank():
    assert DEFAULT_REGISTRY.key_for_header("Favourite Colour") is None
    assert DEFAULT_REGISTRY.key_for_header("") is None


def test_required_keys_are_unconditional_only():
    required = DEFAULT_REGISTRY.required_keys()
    assert "firstName" in required
    assert "dob" in required
    # conditionally required
    assert "guardianName" not in required
    assert "previousSchoolName" not in required
    assert "currStreet" not in required


def test_enum_lists_back_every_dropdown():
    lists = DEFAULT_REGISTRY.enum_lists()
    assert lists["YesNo"] == ("Yes", "No")
    assert "Delhi" in lists["States"]
    for spec in DEFAULT_REGISTRY.fields:
        if spec.type in (FieldType.ENUM, FieldType.BOOLEAN):
            assert spec.allowed_values in lists.values()


@pytest.mark.parametrize("value,expected", [("Yes", True), ("y", True), ("TRUE", True), ("1", True),
                                            ("No", False), ("", False), (None, False)])
def test_is_yes(value, expected):
    assert is_yes(value) is expected
