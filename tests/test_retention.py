from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from console_core.audit.retention import RetentionSweeper
from console_core.errors import Internal, InvalidArgument, StoreError
from console_core.store.base import Query
from console_core.store.sqlite import SqliteDocumentStore
from console_core.utils.time import to_utc_iso

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _seed(store, *ages_in_days: int) -> None:
    for age in ages_in_days:
        store.insert(
            "audit_logs",
            {
                "entityType": "client",
                "action": "update",
                "timestamp": to_utc_iso(NOW - timedelta(days=age)),
            },
        )


@pytest.mark.asyncio
async def test_purges_only_entries_past_cutoff(store) -> None:
    _seed(store, 91, 10)
    sweeper = RetentionSweeper(store, clock=lambda: NOW)

    assert await sweeper.purge_older_than(90) == 1
    remaining = store.query("audit_logs", Query())
    assert len(remaining) == 1
    assert remaining[0].data["timestamp"] == to_utc_iso(NOW - timedelta(days=10))

    assert await sweeper.purge_older_than(90) == 0


@pytest.mark.asyncio
async def test_purges_in_batches(tmp_path) -> None:
    store = SqliteDocumentStore(str(tmp_path / "audit.sqlite"))
    try:
        _seed(store, *([200] * 7), 1)
        sweeper = RetentionSweeper(store, batch_size=3, clock=lambda: NOW)
        assert await sweeper.purge_older_than(30) == 7
        assert len(store.query("audit_logs", Query())) == 1
    finally:
        store.close()


@pytest.mark.asyncio
async def test_zero_days_purges_everything_older_than_now(store) -> None:
    _seed(store, 1, 2)
    sweeper = RetentionSweeper(store, clock=lambda: NOW)
    assert await sweeper.purge_older_than(0) == 2


@pytest.mark.parametrize("days", [-1, 1.5, "90", True])
@pytest.mark.asyncio
async def test_rejects_bad_days(store, days) -> None:
    with pytest.raises(InvalidArgument):
        await RetentionSweeper(store).purge_older_than(days)


@pytest.mark.asyncio
async def test_store_failure_is_internal(store) -> None:
    _seed(store, 100)
    with patch.object(store, "delete_many", side_effect=StoreError("io")):
        with pytest.raises(Internal):
            await RetentionSweeper(store, clock=lambda: NOW).purge_older_than(90)


def test_batch_size_must_be_positive(store) -> None:
    with pytest.raises(ValueError):
        RetentionSweeper(store, batch_size=0)
