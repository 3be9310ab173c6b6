import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

import httpx
from fastapi import FastAPI

from payment_webhooks.cleanup import cleanup_task
from payment_webhooks.collaborators import (
    Collaborators,
    HttpAutomationTrigger,
    InMemoryRecordStore,
    LoggingAutomationTrigger,
    LoggingReceiptSender,
)
from payment_webhooks.config import Settings
from payment_webhooks.database import open_db
from payment_webhooks.dependencies import get_settings
from payment_webhooks.dispatcher import EventDispatcher
from payment_webhooks.errors import WebhookError, webhook_error_handler
from payment_webhooks.logging_setup import configure_logging
from payment_webhooks.router import router
from payment_webhooks.store import InMemoryIdempotencyStore, SQLiteIdempotencyStore

logger = logging.getLogger(__name__)


def build_collaborators(settings: Settings, http_client: httpx.AsyncClient | None = None) -> Collaborators:
    if settings.automation_trigger_url and http_client is not None:
        automations = HttpAutomationTrigger(
            http_client, settings.automation_trigger_url, settings.automation_timeout_seconds
        )
    else:
        automations = LoggingAutomationTrigger()
    return Collaborators(
        donations=InMemoryRecordStore(),
        subscriptions=InMemoryRecordStore(),
        receipts=LoggingReceiptSender(),
        automations=automations,
        app_url=settings.app_url,
    )


def create_app(settings: Settings | None = None, collaborators: Collaborators | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.log_level, settings.log_format)
        app.state.ready = False
        if not settings.webhook_secrets:
            if settings.allow_unsigned_webhooks:
                logger.warning("WEBHOOK_SECRET is not set, accepting unsigned deliveries")
            else:
                logger.error("WEBHOOK_SECRET is not set, every delivery will be refused")
        claim_timeout = timedelta(seconds=settings.claim_timeout_seconds)
        db = None
        if settings.idempotency_backend == "sqlite":
            db = await open_db(settings.db_path)
            app.state.store = SQLiteIdempotencyStore(db, claim_timeout)
        else:
            logger.warning("Using in-memory idempotency store, not safe across instances or restarts")
            app.state.store = InMemoryIdempotencyStore(settings.memory_store_max_entries, claim_timeout)
        http_client = httpx.AsyncClient()
        app.state.dispatcher = EventDispatcher(
            collaborators or build_collaborators(settings, http_client),
            timeout=settings.handler_timeout_seconds,
        )
        task = asyncio.create_task(cleanup_task(app.state.store, settings))
        app.state.ready = True
        yield
        task.cancel()
        await http_client.aclose()
        if db is not None:
            await db.close()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.ready = False
    app.add_exception_handler(WebhookError, webhook_error_handler)
    app.include_router(router)
    return app
