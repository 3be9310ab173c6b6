import asyncio
import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import aiosqlite
import pytest

from payment_webhooks.cleanup import cleanup_task
from payment_webhooks.config import Settings
from payment_webhooks.store import SQLiteIdempotencyStore

SETTINGS = Settings(retention_days=30, cleanup_interval_hours=1)


async def _insert(store: SQLiteIdempotencyStore, webhook_id: str, status: str, days_old: int) -> None:
    at = (datetime.now(UTC) - timedelta(days=days_old)).isoformat()
    await store._conn.execute(
        "INSERT INTO processed_webhooks(webhook_id,event_type,status,claimed_at,processed_at) "
        "VALUES(?,'payment.succeeded',?,?,?)",
        (webhook_id, status, at, at if status == "processed" else None),
    )
    await store._conn.commit()


async def test_delete_expired_removes_old_records(db: aiosqlite.Connection) -> None:
    store = SQLiteIdempotencyStore(db)
    await _insert(store, "old-1", "processed", days_old=31)
    await _insert(store, "old-2", "processed", days_old=45)
    before = (datetime.now(UTC) - timedelta(days=30)).isoformat()
    assert await store.delete_expired(before) == 2


async def test_delete_expired_keeps_recent_records(db: aiosqlite.Connection) -> None:
    store = SQLiteIdempotencyStore(db)
    await _insert(store, "recent", "processed", days_old=5)
    before = (datetime.now(UTC) - timedelta(days=30)).isoformat()
    assert await store.delete_expired(before) == 0
    assert await store.has_processed("recent")


async def test_delete_expired_drops_abandoned_claims(db: aiosqlite.Connection) -> None:
    store = SQLiteIdempotencyStore(db)
    await _insert(store, "abandoned", "processing", days_old=31)
    await _insert(store, "in-flight", "processing", days_old=0)
    before = (datetime.now(UTC) - timedelta(days=30)).isoformat()
    assert await store.delete_expired(before) == 1


@patch("payment_webhooks.cleanup.asyncio.sleep", new_callable=AsyncMock)
async def test_cleanup_task_runs_and_sleeps(mock_sleep, db: aiosqlite.Connection) -> None:
    store = SQLiteIdempotencyStore(db)
    await _insert(store, "old", "processed", days_old=31)
    mock_sleep.side_effect = [None, asyncio.CancelledError()]
    with pytest.raises(asyncio.CancelledError):
        await cleanup_task(store, SETTINGS)
    mock_sleep.assert_called_with(SETTINGS.cleanup_interval_hours * 3600)
    assert not await store.has_processed("old")


@patch("payment_webhooks.cleanup.asyncio.sleep", new_callable=AsyncMock)
async def test_cleanup_task_survives_failed_iteration(mock_sleep, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="payment_webhooks.cleanup")
    store = AsyncMock()
    store.delete_expired.side_effect = [aiosqlite.OperationalError("database is locked"), 3]
    mock_sleep.side_effect = [None, asyncio.CancelledError()]
    with pytest.raises(asyncio.CancelledError):
        await cleanup_task(store, SETTINGS)
    assert store.delete_expired.await_count == 2
    assert mock_sleep.await_count == 2
    assert "Cleanup of processed webhook records failed" in caplog.text
    assert "Cleanup deleted 3 processed webhook records" in caplog.text
