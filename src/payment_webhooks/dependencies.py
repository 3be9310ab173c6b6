from functools import lru_cache

from fastapi import Request

from payment_webhooks.config import Settings
from payment_webhooks.dispatcher import EventDispatcher
from payment_webhooks.store import IdempotencyStore


@lru_cache
def get_settings() -> Settings:
    return Settings()


async def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_store(request: Request) -> IdempotencyStore:
    return request.app.state.store


async def get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher
