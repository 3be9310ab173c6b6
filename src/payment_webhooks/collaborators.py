"""Interfaces to the systems the webhook handlers act on.

Donation and subscription records, the email service and the automation
engine live elsewhere in the platform. The in-process adapters below are
enough to run the receiver on its own.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """Raised by a ReceiptSender when a message could not be handed off."""


class RecordStore(Protocol):
    async def get(self, record_id: str) -> dict[str, Any] | None: ...

    async def update_status(self, record_id: str, status: str, **fields: Any) -> None: ...


class ReceiptSender(Protocol):
    async def send(self, template_id: str, recipient: str, data: dict[str, Any]) -> None: ...


class AutomationTrigger(Protocol):
    async def trigger(self, event_type: str, data: dict[str, Any]) -> None: ...


class InMemoryRecordStore:
    def __init__(self, records: dict[str, dict[str, Any]] | None = None) -> None:
        self.records: dict[str, dict[str, Any]] = records if records is not None else {}

    async def get(self, record_id: str) -> dict[str, Any] | None:
        record = self.records.get(record_id)
        return dict(record) if record else None

    async def update_status(self, record_id: str, status: str, **fields: Any) -> None:
        record = self.records.setdefault(record_id, {})
        record.update(fields)
        record["status"] = status


class LoggingReceiptSender:
    async def send(self, template_id: str, recipient: str, data: dict[str, Any]) -> None:
        logger.info("Email %s queued for %s", template_id, recipient)


class LoggingAutomationTrigger:
    async def trigger(self, event_type: str, data: dict[str, Any]) -> None:
        logger.info("Automation trigger %s", event_type)


class HttpAutomationTrigger:
    """Posts trigger notifications to the workflow engine.

    Fire-and-forget: a failed notification is logged and never fails the webhook.
    """

    def __init__(self, client: httpx.AsyncClient, url: str, timeout: float = 5.0) -> None:
        self._client = client
        self._url = url
        self._timeout = timeout

    async def trigger(self, event_type: str, data: dict[str, Any]) -> None:
        body = {"triggerType": event_type, "data": data, "source": "webhook"}
        try:
            response = await self._client.post(self._url, json=body, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Automation trigger %s failed: %s", event_type, e)


@dataclass
class Collaborators:
    donations: RecordStore
    subscriptions: RecordStore
    receipts: ReceiptSender
    automations: AutomationTrigger
    app_url: str = "http://localhost:3000"
