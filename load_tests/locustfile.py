"""
Locust load tests for the payment webhook receiver.

Run against a local server:
    WEBHOOK_SECRET=whsec_load uv run uvicorn payment_webhooks.app:create_app --factory --port 8000

Headless benchmark (60 s, 50 users, ramp 10/s):
    WEBHOOK_SECRET=whsec_load uv run locust -f load_tests/locustfile.py --headless \
        -u 50 -r 10 --run-time 60s --host http://localhost:8000
"""

import json
import os
import uuid
from datetime import UTC, datetime

from locust import HttpUser, between, task

from payment_webhooks.signature import compute_signature

SECRET = os.environ.get("WEBHOOK_SECRET", "whsec_load")


def _signed(event: dict) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(event).encode()
    headers = {
        "Content-Type": "application/json",
        "X-Signature": compute_signature(body, SECRET),
        "X-Timestamp": datetime.now(UTC).isoformat(),
    }
    return body, headers


def _event(event_id: str) -> dict:
    return {
        "id": event_id,
        "type": "subscription.created",
        "data": {"id": f"sub_{event_id}", "amount": 2500},
        "created_at": datetime.now(UTC).isoformat(),
    }


class NewDeliveryUser(HttpUser):
    """Simulates the provider delivering new events."""

    wait_time = between(0.05, 0.2)
    weight = 3

    @task
    def post_new_event(self) -> None:
        body, headers = _signed(_event(f"evt_{uuid.uuid4().hex}"))
        self.client.post("/webhooks/payments", data=body, headers=headers)


class RedeliveryUser(HttpUser):
    """Simulates at-least-once redelivery of the same event."""

    wait_time = between(0.1, 0.5)
    weight = 1

    def on_start(self) -> None:
        self._event = _event(f"evt_{uuid.uuid4().hex}")

    @task
    def post_duplicate_event(self) -> None:
        body, headers = _signed(self._event)
        with self.client.post("/webhooks/payments", data=body, headers=headers, catch_response=True) as resp:
            if resp.status_code == 409:
                resp.success()  # expected while the first delivery is in flight


class ForgedDeliveryUser(HttpUser):
    """Simulates unsigned traffic that must be turned away."""

    wait_time = between(0.5, 1.0)
    weight = 1

    @task
    def post_forged_event(self) -> None:
        body = json.dumps(_event("evt_forged")).encode()
        headers = {"Content-Type": "application/json", "X-Signature": "0" * 64}
        with self.client.post("/webhooks/payments", data=body, headers=headers, catch_response=True) as resp:
            if resp.status_code == 401:
                resp.success()
