from __future__ import annotations

from console_core.audit.changes import has_actual_changes


def test_system_fields_are_ignored() -> None:
    before = {"name": "Acme", "changed": "2024-01-01", "lastModifiedBy": "a"}
    after = {"name": "Acme", "changed": "2024-02-01", "lastModifiedBy": "b"}
    assert has_actual_changes(before, after) is False


def test_business_field_change_is_detected() -> None:
    assert has_actual_changes({"name": "Acme"}, {"name": "Acme Ltd"}) is True


def test_nested_values_compare_by_content() -> None:
    before = {"address": {"city": "Oslo", "zip": "0150"}}
    after = {"address": {"zip": "0150", "city": "Oslo"}}
    assert has_actual_changes(before, after) is False


def test_missing_field_equals_none() -> None:
    assert has_actual_changes({"note": None}, {}) is False
    assert has_actual_changes({}, {"note": "x"}) is True


def test_custom_ignore_set() -> None:
    assert has_actual_changes({"v": 1}, {"v": 2}, ignore={"v"}) is False
