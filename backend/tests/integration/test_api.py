# backend/tests/integration/test_api.py
import hmac
import hashlib
import json
from unittest.mock import AsyncMock

from agrichat.config.settings import settings

API_PREFIX = f"/api/{settings.api_version}"
ADMIN_HEADERS = {"X-Admin-Secret": settings.whatsapp_admin_secret}


def signed(payload):
    payload_bytes = json.dumps(payload).encode('utf-8')
    signature = "sha256=" + hmac.new(settings.whatsapp_app_secret.encode('utf-8'), payload_bytes, hashlib.sha256).hexdigest()
    return payload_bytes, {"X-Hub-Signature-256": signature, "Content-Type": "application/json"}


def test_webhook_verification_success(test_client):
    params = {
        "hub.mode": "subscribe", "hub.challenge": "12345",
        "hub.verify_token": settings.whatsapp_verify_token
    }
    response = test_client.get(f"{API_PREFIX}/webhooks/whatsapp", params=params)
    assert response.status_code == 200
    assert response.text == "12345"


def test_webhook_verification_failure(test_client):
    params = {
        "hub.mode": "subscribe", "hub.challenge": "12345",
        "hub.verify_token": "wrong_token"
    }
    response = test_client.get(f"{API_PREFIX}/webhooks/whatsapp", params=params)
    assert response.status_code == 403


def test_handle_webhook_success(test_client, mocker):
    """A signed delivery is handed to the processor and acknowledged."""
    mock_process = mocker.patch("agrichat.routes.webhooks.webhook_processor.process", new_callable=AsyncMock)
    mock_process.return_value = "processed"

    payload = {"entry": [{"changes": [{"field": "messages", "value": {"messages": [
        {"from": "15551234567", "id": "wamid.ID", "text": {"body": "Hello"}, "type": "text"}
    ]}}]}]}
    payload_bytes, headers = signed(payload)

    response = test_client.post(f"{API_PREFIX}/webhooks/whatsapp", content=payload_bytes, headers=headers)

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    mock_process.assert_awaited_once_with(payload)


def test_handle_webhook_acknowledges_processing_errors(test_client, mocker):
    mocker.patch(
        "agrichat.routes.webhooks.webhook_processor.process",
        new_callable=AsyncMock,
        side_effect=RuntimeError("engine exploded"),
    )
    payload_bytes, headers = signed({"entry": []})
    response = test_client.post(f"{API_PREFIX}/webhooks/whatsapp", content=payload_bytes, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_handle_webhook_invalid_signature(test_client, mocker):
    mock_process = mocker.patch("agrichat.routes.webhooks.webhook_processor.process", new_callable=AsyncMock)
    payload_bytes = json.dumps({"entry": []}).encode('utf-8')
    headers = {"X-Hub-Signature-256": "sha256=invalid", "Content-Type": "application/json"}

    response = test_client.post(f"{API_PREFIX}/webhooks/whatsapp", content=payload_bytes, headers=headers)
    assert response.status_code == 403
    mock_process.assert_not_awaited()


def test_admin_requires_secret(test_client):
    response = test_client.get(f"{API_PREFIX}/admin/whatsapp/queue")
    assert response.status_code == 403
    response = test_client.get(f"{API_PREFIX}/admin/whatsapp/queue", headers={"X-Admin-Secret": "wrong"})
    assert response.status_code == 403


def test_admin_queue_stats(test_client):
    response = test_client.get(f"{API_PREFIX}/admin/whatsapp/queue", headers=ADMIN_HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {"queued": 0, "delayed": 0, "completed": 0, "dead": 0}


def test_admin_opt_out_normalises_phone(test_client, mocker):
    mock_opt_out = mocker.patch("agrichat.routes.admin.template_service.set_opt_out", new_callable=AsyncMock)
    response = test_client.post(
        f"{API_PREFIX}/admin/whatsapp/optout",
        json={"phone": "+1 (473) 555-0101", "opted_out": True},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 200
    mock_opt_out.assert_awaited_once_with("14735550101", True)


def test_health_probes(test_client):
    assert test_client.get("/health/live").status_code == 200
    response = test_client.get("/health")
    assert response.json()["session_backend"] == "memory"
    assert test_client.get("/health/ready").json() == {"status": "ready"}


def test_app_only_carries_channel_middleware(test_client):
    from agrichat.main import app

    names = {m.cls.__name__ for m in app.user_middleware}
    assert "SlowAPIMiddleware" in names
    assert "CORSMiddleware" not in names
    assert "x-process-time" not in test_client.get("/health/live").headers
