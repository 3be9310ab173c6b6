import json

from httpx import AsyncClient

from payment_webhooks.signature import compute_signature

from conftest import SECRET


async def _post(client: AsyncClient, event: dict, secret: str = SECRET):
    body = json.dumps(event).encode()
    headers = {"X-Signature": compute_signature(body, secret), "Content-Type": "application/json"}
    return await client.post("/webhooks/payments", content=body, headers=headers)


async def test_metrics_endpoint_returns_200(client: AsyncClient) -> None:
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]


async def test_metrics_exposes_handler_metrics(client: AsyncClient) -> None:
    response = await client.get("/metrics")
    assert "webhook_handler_duration_seconds" in response.text
    assert "webhook_handler_failures_total" in response.text


async def test_accepted_delivery_counted(client: AsyncClient) -> None:
    await _post(client, {"id": "m-1", "type": "payment.succeeded", "data": {"id": "pay_1"}})
    response = await client.get("/metrics")
    assert 'webhook_deliveries_total{result="accepted"}' in response.text


async def test_duplicate_delivery_counted(client: AsyncClient) -> None:
    event = {"id": "m-2", "type": "subscription.created", "data": {"id": "sub_m2"}}
    await _post(client, event)
    await _post(client, event)
    response = await client.get("/metrics")
    assert 'webhook_deliveries_total{result="duplicate"}' in response.text


async def test_rejected_signature_counted(client: AsyncClient) -> None:
    await _post(client, {"id": "m-3", "type": "payment.failed"}, secret="wrong")
    response = await client.get("/metrics")
    assert 'webhook_deliveries_total{result="rejected_signature"}' in response.text


async def test_unknown_type_counted(client: AsyncClient) -> None:
    await _post(client, {"id": "m-4", "type": "customer.created"})
    response = await client.get("/metrics")
    assert 'webhook_deliveries_total{result="unknown_type"}' in response.text
