import asyncio
import logging
from collections import OrderedDict
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Protocol

import aiosqlite

from payment_webhooks.models import ProcessedWebhookRecord

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


class ClaimResult(StrEnum):
    CLAIMED = "claimed"
    PROCESSED = "processed"
    IN_FLIGHT = "in_flight"


class IdempotencyStore(Protocol):
    async def has_processed(self, webhook_id: str) -> bool: ...

    async def claim(self, webhook_id: str) -> ClaimResult: ...

    async def mark_processed(self, webhook_id: str, event_type: str | None = None) -> None: ...

    async def release(self, webhook_id: str) -> None: ...

    async def get(self, webhook_id: str) -> ProcessedWebhookRecord | None: ...

    async def delete_expired(self, before: str) -> int: ...


class InMemoryIdempotencyStore:
    """Process-local store. Only correct for a single instance; state is lost on restart.

    Once more than ``max_entries`` ids are remembered, the oldest half is
    forgotten. A forgotten id can be processed again, which handlers tolerate.
    """

    def __init__(self, max_entries: int = 10_000, claim_timeout: timedelta = timedelta(minutes=5)) -> None:
        self._max_entries = max_entries
        self._claim_timeout = claim_timeout
        self._processed: OrderedDict[str, ProcessedWebhookRecord] = OrderedDict()
        self._in_flight: dict[str, datetime] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._processed)

    async def has_processed(self, webhook_id: str) -> bool:
        return webhook_id in self._processed

    async def claim(self, webhook_id: str) -> ClaimResult:
        async with self._lock:
            if webhook_id in self._processed:
                return ClaimResult.PROCESSED
            claimed_at = self._in_flight.get(webhook_id)
            now = _now()
            if claimed_at is not None and now - claimed_at < self._claim_timeout:
                return ClaimResult.IN_FLIGHT
            self._in_flight[webhook_id] = now
            return ClaimResult.CLAIMED

    async def mark_processed(self, webhook_id: str, event_type: str | None = None) -> None:
        async with self._lock:
            self._in_flight.pop(webhook_id, None)
            if webhook_id in self._processed:
                return
            self._processed[webhook_id] = ProcessedWebhookRecord(
                webhook_id=webhook_id,
                event_type=event_type,
                processed_at=_now().isoformat(),
            )
            if len(self._processed) > self._max_entries:
                self._evict_oldest_half()

    async def release(self, webhook_id: str) -> None:
        async with self._lock:
            self._in_flight.pop(webhook_id, None)

    async def get(self, webhook_id: str) -> ProcessedWebhookRecord | None:
        return self._processed.get(webhook_id)

    async def delete_expired(self, before: str) -> int:
        async with self._lock:
            expired = [key for key, record in self._processed.items() if record.processed_at < before]
            for key in expired:
                del self._processed[key]
        return len(expired)

    def _evict_oldest_half(self) -> None:
        count = len(self._processed) // 2
        for _ in range(count):
            self._processed.popitem(last=False)
        logger.warning("Idempotency store over %d entries, evicted %d oldest", self._max_entries, count)


class SQLiteIdempotencyStore:
    def __init__(self, conn: aiosqlite.Connection, claim_timeout: timedelta = timedelta(minutes=5)) -> None:
        self._conn = conn
        self._claim_timeout = claim_timeout

    async def has_processed(self, webhook_id: str) -> bool:
        async with self._conn.execute(
            "SELECT 1 FROM processed_webhooks WHERE webhook_id=? AND status='processed'",
            (webhook_id,),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def claim(self, webhook_id: str) -> ClaimResult:
        now = _now()
        cursor = await self._conn.execute(
            "INSERT OR IGNORE INTO processed_webhooks(webhook_id,event_type,status,claimed_at,processed_at) "
            "VALUES(?,NULL,'processing',?,NULL)",
            (webhook_id, now.isoformat()),
        )
        await self._conn.commit()
        if cursor.rowcount == 1:
            return ClaimResult.CLAIMED
        if await self.has_processed(webhook_id):
            return ClaimResult.PROCESSED
        # Take over a claim whose holder never finished.
        stale_before = (now - self._claim_timeout).isoformat()
        cursor = await self._conn.execute(
            "UPDATE processed_webhooks SET claimed_at=? WHERE webhook_id=? AND status='processing' AND claimed_at < ?",
            (now.isoformat(), webhook_id, stale_before),
        )
        await self._conn.commit()
        if cursor.rowcount == 1:
            logger.warning("Reclaimed abandoned claim for webhook %s", webhook_id)
            return ClaimResult.CLAIMED
        return ClaimResult.IN_FLIGHT

    async def mark_processed(self, webhook_id: str, event_type: str | None = None) -> None:
        now = _now().isoformat()
        await self._conn.execute(
            "INSERT INTO processed_webhooks(webhook_id,event_type,status,claimed_at,processed_at) "
            "VALUES(?,?,'processed',?,?) "
            "ON CONFLICT(webhook_id) DO UPDATE SET status='processed', "
            "event_type=excluded.event_type, processed_at=excluded.processed_at "
            "WHERE processed_webhooks.status='processing'",
            (webhook_id, event_type, now, now),
        )
        await self._conn.commit()

    async def release(self, webhook_id: str) -> None:
        await self._conn.execute(
            "DELETE FROM processed_webhooks WHERE webhook_id=? AND status='processing'",
            (webhook_id,),
        )
        await self._conn.commit()

    async def get(self, webhook_id: str) -> ProcessedWebhookRecord | None:
        async with self._conn.execute(
            "SELECT webhook_id, event_type, processed_at FROM processed_webhooks "
            "WHERE webhook_id=? AND status='processed'",
            (webhook_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return ProcessedWebhookRecord(**dict(row))

    async def delete_expired(self, before: str) -> int:
        cursor = await self._conn.execute(
            "DELETE FROM processed_webhooks WHERE (status='processed' AND processed_at < ?) "
            "OR (status='processing' AND claimed_at < ?)",
            (before, before),
        )
        await self._conn.commit()
        return cursor.rowcount
