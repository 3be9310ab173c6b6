"""Per-event-type side effects.

Every handler is safe to run twice: a record already in the target status is
left alone and nothing is sent. The status update is always the last step,
so a failed email or lookup leaves the record as it was and the provider's
retry runs the whole handler again.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from payment_webhooks.collaborators import Collaborators, RecordStore
from payment_webhooks.errors import MalformedPayload
from payment_webhooks.models import EventType

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any], Collaborators], Awaitable[None]]

# target status -> statuses it may be entered from
PAYMENT_TRANSITIONS: dict[str, set[str | None]] = {
    "completed": {"pending"},
    "failed": {"pending"},
    "refunded": {"completed"},
}

SUBSCRIPTION_TRANSITIONS: dict[str, set[str | None]] = {
    "active": {None},
    "cancelled": {"active"},
    "past_due": {"active"},
}


def _require_id(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    raise MalformedPayload(f"Event data is missing {' or '.join(keys)}")


def _recipient(data: dict[str, Any]) -> str | None:
    customer = data.get("customer")
    if isinstance(customer, dict):
        email = customer.get("email")
        if isinstance(email, str) and email:
            return email
    return None


async def _should_transition(
    store: RecordStore,
    transitions: dict[str, set[str | None]],
    record_id: str,
    target: str,
) -> bool:
    record = await store.get(record_id)
    current = record.get("status") if record else None
    if current == target:
        logger.info("Record %s already %s, skipping", record_id, target)
        return False
    if current not in transitions[target]:
        logger.warning("Record %s cannot move from %s to %s, skipping", record_id, current, target)
        return False
    return True


async def _notify(collaborators: Collaborators, template_id: str, data: dict[str, Any]) -> None:
    recipient = _recipient(data)
    if recipient is None:
        logger.info("No recipient for %s, email skipped", template_id)
        return
    await collaborators.receipts.send(template_id, recipient, data)


async def handle_payment_succeeded(data: dict[str, Any], collaborators: Collaborators) -> None:
    payment_id = _require_id(data, "id", "payment_id")
    if not await _should_transition(collaborators.donations, PAYMENT_TRANSITIONS, payment_id, "completed"):
        return
    await _notify(collaborators, "donation-receipt", data)
    await collaborators.automations.trigger("donation.completed", data)
    await collaborators.donations.update_status(payment_id, "completed")
    logger.info("Donation %s completed", payment_id)


async def handle_payment_failed(data: dict[str, Any], collaborators: Collaborators) -> None:
    payment_id = _require_id(data, "id", "payment_id")
    if not await _should_transition(collaborators.donations, PAYMENT_TRANSITIONS, payment_id, "failed"):
        return
    await _notify(collaborators, "payment-failed", data)
    await collaborators.donations.update_status(
        payment_id, "failed", failure_reason=data.get("failure_reason")
    )
    logger.info("Donation %s failed reason=%s", payment_id, data.get("failure_reason"))


async def handle_payment_refunded(data: dict[str, Any], collaborators: Collaborators) -> None:
    payment_id = _require_id(data, "id", "payment_id")
    if not await _should_transition(collaborators.donations, PAYMENT_TRANSITIONS, payment_id, "refunded"):
        return
    await _notify(collaborators, "refund-confirmation", data)
    await collaborators.automations.trigger("donation.refunded", data)
    await collaborators.donations.update_status(payment_id, "refunded")
    logger.info("Donation %s refunded", payment_id)


async def handle_subscription_created(data: dict[str, Any], collaborators: Collaborators) -> None:
    subscription_id = _require_id(data, "subscription_id", "id")
    store = collaborators.subscriptions
    if not await _should_transition(store, SUBSCRIPTION_TRANSITIONS, subscription_id, "active"):
        return
    await _notify(collaborators, "subscription-welcome", data)
    await collaborators.automations.trigger("subscription.created", data)
    fields = {key: data[key] for key in ("amount", "payment_method", "interval") if key in data}
    await store.update_status(subscription_id, "active", **fields)
    logger.info("Subscription %s active", subscription_id)


async def handle_subscription_updated(data: dict[str, Any], collaborators: Collaborators) -> None:
    subscription_id = _require_id(data, "subscription_id", "id")
    record = await collaborators.subscriptions.get(subscription_id)
    if record is None or record.get("status") != "active":
        logger.warning(
            "Subscription %s is %s, update ignored",
            subscription_id,
            record.get("status") if record else "unknown",
        )
        return
    changes = {
        key: data[key] for key in ("amount", "payment_method") if key in data and record.get(key) != data[key]
    }
    if not changes:
        logger.info("Subscription %s unchanged", subscription_id)
        return
    if "amount" in changes:
        await _notify(collaborators, "subscription-updated", data)
    await collaborators.subscriptions.update_status(subscription_id, "active", **changes)
    logger.info("Subscription %s updated fields=%s", subscription_id, sorted(changes))


async def handle_subscription_cancelled(data: dict[str, Any], collaborators: Collaborators) -> None:
    subscription_id = _require_id(data, "subscription_id", "id")
    store = collaborators.subscriptions
    if not await _should_transition(store, SUBSCRIPTION_TRANSITIONS, subscription_id, "cancelled"):
        return
    await _notify(collaborators, "subscription-cancelled", data)
    await collaborators.automations.trigger("subscription.cancelled", data)
    await store.update_status(subscription_id, "cancelled", cancelled_at=datetime.now(UTC).isoformat())
    logger.info("Subscription %s cancelled", subscription_id)


async def handle_subscription_payment_failed(data: dict[str, Any], collaborators: Collaborators) -> None:
    subscription_id = _require_id(data, "subscription_id", "id")
    store = collaborators.subscriptions
    if not await _should_transition(store, SUBSCRIPTION_TRANSITIONS, subscription_id, "past_due"):
        return
    update_url = f"{collaborators.app_url.rstrip('/')}/donor/subscription/{subscription_id}/update-payment"
    await _notify(collaborators, "subscription-payment-failed", {**data, "update_payment_url": update_url})
    await collaborators.automations.trigger("subscription.payment_failed", data)
    await store.update_status(subscription_id, "past_due")
    logger.info("Subscription %s past due", subscription_id)


HANDLERS: dict[EventType, Handler] = {
    EventType.PAYMENT_SUCCEEDED: handle_payment_succeeded,
    EventType.PAYMENT_FAILED: handle_payment_failed,
    EventType.PAYMENT_REFUNDED: handle_payment_refunded,
    EventType.SUBSCRIPTION_CREATED: handle_subscription_created,
    EventType.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    EventType.SUBSCRIPTION_CANCELLED: handle_subscription_cancelled,
    EventType.SUBSCRIPTION_PAYMENT_FAILED: handle_subscription_payment_failed,
}
