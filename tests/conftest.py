from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from console_core.app import AppContext, build_app_context
from console_core.auth.context import Principal
from console_core.config import Settings
from console_core.store.blobs import LocalBlobStore
from console_core.store.memory import MemoryDocumentStore


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> Iterator[None]:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def seed_profile(store: MemoryDocumentStore) -> Callable[..., None]:
    def _seed(subject_id: str, roles: Any, **fields: Any) -> None:
        profile = {"email": f"{subject_id}@example.com", "roles": roles, **fields}
        store.set("users", subject_id, profile)

    return _seed


@pytest.fixture
def principal() -> Callable[[str], Principal]:
    def _make(subject_id: str, email: str | None = None) -> Principal:
        return Principal(subject_id=subject_id, email=email or f"{subject_id}@example.com")

    return _make


@pytest.fixture
def context(store: MemoryDocumentStore, tmp_path) -> AppContext:
    settings = Settings.model_validate(
        {"storage": {"backend": "memory"}, "blobs": {"root": str(tmp_path / "blobs")}}
    )
    return build_app_context(settings, store=store, blobs=LocalBlobStore(str(tmp_path / "blobs")))
