from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from payment_webhooks.app import create_app
from payment_webhooks.collaborators import Collaborators, InMemoryRecordStore
from payment_webhooks.config import Settings
from payment_webhooks.database import open_db
from payment_webhooks.dependencies import get_dispatcher, get_store
from payment_webhooks.dispatcher import EventDispatcher
from payment_webhooks.store import SQLiteIdempotencyStore

SECRET = "whsec_test_secret"


@pytest.fixture
async def db(tmp_path: pytest.TempPathFactory):
    conn = await open_db(str(tmp_path / "test.db"))
    yield conn
    await conn.close()


@pytest.fixture
def settings(tmp_path: pytest.TempPathFactory) -> Settings:
    return Settings(webhook_secret=SECRET, db_path=str(tmp_path / "test.db"))


@pytest.fixture
def collaborators() -> Collaborators:
    return Collaborators(
        donations=InMemoryRecordStore({"pay_1": {"status": "pending"}}),
        subscriptions=InMemoryRecordStore(),
        receipts=AsyncMock(),
        automations=AsyncMock(),
    )


@pytest.fixture
async def store(db) -> SQLiteIdempotencyStore:
    return SQLiteIdempotencyStore(db)


@pytest.fixture
async def client(settings: Settings, store: SQLiteIdempotencyStore, collaborators: Collaborators) -> AsyncClient:
    app = create_app(settings)
    dispatcher = EventDispatcher(collaborators, timeout=settings.handler_timeout_seconds)
    app.state.ready = True
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
