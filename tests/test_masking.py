from __future__ import annotations

import copy

from console_core.utils.masking import REDACTED, redact_sensitive_fields, sanitize


def test_sanitize_redacts_nested_keys_case_insensitively() -> None:
    value = {
        "name": "Ada",
        "Password": "hunter2",
        "profile": {"apiKey": "k", "settings": [{"refreshToken": "r", "theme": "dark"}]},
        "creditCardNumber": "4111",
        "userPin": "1234",
        "count": 3,
    }
    result = sanitize(value)

    assert result["name"] == "Ada"
    assert result["Password"] == REDACTED
    assert result["profile"]["apiKey"] == REDACTED
    assert result["profile"]["settings"][0] == {"refreshToken": REDACTED, "theme": "dark"}
    assert result["creditCardNumber"] == REDACTED
    assert result["userPin"] == REDACTED
    assert result["count"] == 3


def test_sanitize_does_not_mutate_input() -> None:
    value = {"secretValue": "s", "items": [{"token": "t"}]}
    original = copy.deepcopy(value)
    sanitize(value)
    assert value == original


def test_sanitize_is_idempotent() -> None:
    value = {"a": {"accessToken": "x", "b": [1, {"cvv": "123"}]}, "ok": None}
    once = sanitize(value)
    assert sanitize(once) == once


def test_sanitize_passes_scalars_and_none_through() -> None:
    assert sanitize(None) is None
    assert sanitize("password") == "password"
    assert sanitize(7) == 7
    assert sanitize(["token", {"x": 1}]) == ["token", {"x": 1}]


def test_sanitize_handles_deep_nesting() -> None:
    value: dict = {"leaf": {"privateKey": "pk"}}
    for _ in range(60):
        value = {"next": value}
    result = sanitize(value)
    for _ in range(60):
        result = result["next"]
    assert result["leaf"]["privateKey"] == REDACTED


def test_redact_sensitive_fields_for_logs() -> None:
    masked = redact_sensitive_fields(
        {"authorization": "Bearer x", "q": "hello", "nested": [{"cookie": "c"}]},
        mask="***MASKED***",
    )
    assert masked == {
        "authorization": "***MASKED***",
        "q": "hello",
        "nested": [{"cookie": "***MASKED***"}],
    }
