import logging
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from payment_webhooks.config import Settings
from payment_webhooks.dependencies import get_app_settings, get_dispatcher, get_store
from payment_webhooks.dispatcher import EventDispatcher
from payment_webhooks.errors import (
    DeliveryInFlight,
    HandlerFailure,
    InvalidSignature,
    MalformedPayload,
    SecretNotConfigured,
    StaleTimestamp,
)
from payment_webhooks.metrics import DELIVERIES_TOTAL
from payment_webhooks.models import ProcessedWebhookRecord, ReceivedResponse, parse_event
from payment_webhooks.replay import is_fresh
from payment_webhooks.signature import verify_any
from payment_webhooks.store import ClaimResult, IdempotencyStore

logger = logging.getLogger(__name__)
router = APIRouter()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _check_signature(request: Request, raw_body: bytes, signature: str | None, settings: Settings) -> None:
    secrets = settings.webhook_secrets
    if not secrets:
        if not settings.allow_unsigned_webhooks:
            logger.error("Webhook secret is not configured, refusing delivery")
            raise SecretNotConfigured("Webhook secret is not configured")
        logger.warning("Unsigned webhooks allowed, signature check skipped")
        return
    if not signature or not verify_any(raw_body, signature, secrets):
        DELIVERIES_TOTAL.labels(result="rejected_signature").inc()
        logger.warning(
            "Rejected webhook with %s signature from %s",
            "invalid" if signature else "missing",
            _client_ip(request),
        )
        raise InvalidSignature("Missing or invalid signature")


def _check_timestamp(request: Request, timestamp: str | None, settings: Settings) -> None:
    if timestamp is None:
        if settings.require_timestamp:
            DELIVERIES_TOTAL.labels(result="rejected_timestamp").inc()
            logger.warning("Rejected webhook without timestamp from %s", _client_ip(request))
            raise StaleTimestamp("X-Timestamp header is required")
        return
    max_age = timedelta(seconds=settings.max_timestamp_age_seconds)
    if not is_fresh(timestamp, datetime.now(UTC), max_age):
        DELIVERIES_TOTAL.labels(result="rejected_timestamp").inc()
        logger.warning("Rejected webhook with stale timestamp %r from %s", timestamp, _client_ip(request))
        raise StaleTimestamp("Timestamp is invalid or outside the allowed window")


@router.post("/webhooks/payments")
async def receive_payment_webhook(
    request: Request,
    x_signature: str | None = Header(default=None),
    x_timestamp: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
    store: IdempotencyStore = Depends(get_store),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> JSONResponse:
    raw_body = await request.body()
    _check_signature(request, raw_body, x_signature, settings)
    _check_timestamp(request, x_timestamp, settings)
    try:
        event = parse_event(raw_body)
    except MalformedPayload as e:
        DELIVERIES_TOTAL.labels(result="malformed").inc()
        logger.warning("Malformed webhook payload: %s", e.message)
        raise

    claim = await store.claim(event.id)
    if claim is ClaimResult.PROCESSED:
        DELIVERIES_TOTAL.labels(result="duplicate").inc()
        logger.info("Duplicate webhook %s type=%s", event.id, event.type)
        return JSONResponse(content=ReceivedResponse(duplicate=True).model_dump(exclude_none=True))
    if claim is ClaimResult.IN_FLIGHT:
        DELIVERIES_TOTAL.labels(result="in_flight").inc()
        logger.info("Webhook %s is already being processed", event.id)
        raise DeliveryInFlight(f"Event {event.id} is already being processed")

    try:
        handled = await dispatcher.dispatch(event)
    except HandlerFailure as e:
        await store.release(event.id)
        DELIVERIES_TOTAL.labels(result="handler_failed").inc()
        logger.warning("Released webhook %s after %s handler failure, awaiting redelivery", event.id, e.event_type)
        raise
    except MalformedPayload as e:
        await store.release(event.id)
        DELIVERIES_TOTAL.labels(result="malformed").inc()
        logger.warning("Malformed %s data id=%s: %s", event.type, event.id, e.message)
        raise
    await store.mark_processed(event.id, event.type)
    DELIVERIES_TOTAL.labels(result="accepted" if handled else "unknown_type").inc()
    logger.info("Processed webhook %s type=%s", event.id, event.type)
    return JSONResponse(content=ReceivedResponse().model_dump(exclude_none=True))


@router.get("/webhooks/payments/{webhook_id}")
async def get_processed(
    webhook_id: str,
    store: IdempotencyStore = Depends(get_store),
) -> ProcessedWebhookRecord:
    record = await store.get(webhook_id)
    if record is None:
        raise HTTPException(status_code=404)
    return record


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/ready")
async def ready(request: Request) -> dict:
    if not request.app.state.ready:
        raise HTTPException(status_code=503)
    return {"status": "ok"}
