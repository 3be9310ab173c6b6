from fastapi import Request
from fastapi.responses import JSONResponse


class WebhookError(Exception):
    status_code = 500
    code = "WEBHOOK_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidSignature(WebhookError):
    status_code = 401
    code = "INVALID_SIGNATURE"


class StaleTimestamp(WebhookError):
    status_code = 401
    code = "STALE_TIMESTAMP"


class MalformedPayload(WebhookError):
    """Parse or schema failure. Never worth a provider retry."""

    status_code = 400
    code = "MALFORMED_PAYLOAD"


class DeliveryInFlight(WebhookError):
    status_code = 409
    code = "DELIVERY_IN_FLIGHT"


class SecretNotConfigured(WebhookError):
    status_code = 500
    code = "SECRET_NOT_CONFIGURED"


class HandlerFailure(WebhookError):
    """A domain side effect failed. The event stays unprocessed so the provider retries."""

    status_code = 500
    code = "HANDLER_FAILURE"

    def __init__(self, message: str, event_type: str = "") -> None:
        super().__init__(message)
        self.event_type = event_type


async def webhook_error_handler(request: Request, exc: WebhookError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )
