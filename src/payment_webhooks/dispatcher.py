import asyncio
import logging
import time
from collections.abc import Mapping

from payment_webhooks.collaborators import Collaborators
from payment_webhooks.errors import HandlerFailure, MalformedPayload
from payment_webhooks.handlers import HANDLERS, Handler
from payment_webhooks.metrics import HANDLER_DURATION, HANDLER_FAILURES_TOTAL
from payment_webhooks.models import EventType, WebhookEvent

logger = logging.getLogger(__name__)


class EventDispatcher:
    def __init__(
        self,
        collaborators: Collaborators,
        handlers: Mapping[EventType, Handler] = HANDLERS,
        timeout: float = 10.0,
    ) -> None:
        missing = set(EventType) - set(handlers)
        if missing:
            raise ValueError(f"No handler registered for {sorted(missing)}")
        self._collaborators = collaborators
        self._handlers = dict(handlers)
        self._timeout = timeout

    async def dispatch(self, event: WebhookEvent) -> bool:
        """Run the handler for ``event``.

        Returns False for a well-formed event of unknown type, which is
        acknowledged without doing anything. Handler errors are raised as
        HandlerFailure, except MalformedPayload which passes through.
        """
        if not event.id or not event.type:
            raise MalformedPayload("Event id and type are required")
        event_type = event.event_type
        if event_type is None:
            logger.info("Unhandled webhook event type %s id=%s", event.type, event.id)
            return False

        handler = self._handlers[event_type]
        start = time.monotonic()
        try:
            async with asyncio.timeout(self._timeout):
                await handler(event.data, self._collaborators)
        except MalformedPayload:
            raise
        except TimeoutError as e:
            HANDLER_FAILURES_TOTAL.labels(event_type=event_type.value).inc()
            logger.error("Handler for %s timed out after %ss id=%s", event_type, self._timeout, event.id)
            raise HandlerFailure(f"Handler for {event_type} timed out", event_type.value) from e
        except Exception as e:
            HANDLER_FAILURES_TOTAL.labels(event_type=event_type.value).inc()
            logger.exception("Handler for %s failed id=%s", event_type, event.id)
            raise HandlerFailure(f"Handler for {event_type} failed", event_type.value) from e
        finally:
            HANDLER_DURATION.observe(time.monotonic() - start)
        logger.info("Handled %s id=%s", event_type, event.id)
        return True
