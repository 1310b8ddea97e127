from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.main import app
from app.repositories import get_repository
from app.routers.orders import get_order_fetcher
from app.routers.webhooks import get_webhook_hooks
from app.use_cases.webhook_processing import WebhookHooks
from fakes import FIXED_NOW, InMemoryOpsRepository


@pytest.fixture
def repo():
    fake = InMemoryOpsRepository()
    app.dependency_overrides[get_repository] = lambda: fake
    app.dependency_overrides[get_webhook_hooks] = lambda: WebhookHooks(
        fetch_graph_message=lambda message_id: {
            "id": message_id,
            "subject": "Hello",
            "from": {"emailAddress": {"address": "amy@example.org"}},
            "body": {"contentType": "text", "content": "Hi"},
            "receivedDateTime": "2026-03-10T12:00:00Z",
        }
    )
    yield fake
    app.dependency_overrides.clear()


@pytest.fixture
def client(repo):
    return TestClient(app)


def _signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


ORDER = {
    "id": 5001,
    "name": "#6540",
    "financial_status": "paid",
    "customer": {"email": "amy@example.org", "first_name": "Amy", "last_name": "Baker"},
    "line_items": [{"title": "Customify Hand Fan", "quantity": 1}],
}


def test_health_check(client) -> None:
    response = client.get("/api/v1/system/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_shopify_webhook_rejects_bad_signature(client, repo, monkeypatch) -> None:
    monkeypatch.setattr(settings, "SHOPIFY_WEBHOOK_SECRET", "shhh")

    response = client.post(
        "/api/v1/webhooks/shopify",
        content=json.dumps(ORDER),
        headers={"X-Shopify-Topic": "orders/create", "X-Shopify-Hmac-Sha256": "bogus"},
    )

    assert response.status_code == 401
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["code"] == "WEBHOOK_SIGNATURE_INVALID"
    assert repo.webhook_events == {}


def test_shopify_webhook_with_valid_signature_is_processed_once(client, repo, monkeypatch) -> None:
    monkeypatch.setattr(settings, "SHOPIFY_WEBHOOK_SECRET", "shhh")
    body = json.dumps(ORDER).encode("utf-8")
    headers = {
        "X-Shopify-Topic": "orders/create",
        "X-Shopify-Hmac-Sha256": _signature(body, "shhh"),
        "X-Shopify-Webhook-Id": "delivery-1",
    }

    first = client.post("/api/v1/webhooks/shopify", content=body, headers=headers)
    second = client.post("/api/v1/webhooks/shopify", content=body, headers=headers)

    assert first.status_code == 200
    assert first.json()["status"] == "completed"
    assert first.json()["processed"] is True
    assert second.json()["processed"] is False
    assert len(repo.work_items) == 1


def test_graph_validation_token_is_echoed(client) -> None:
    response = client.post("/api/v1/webhooks/email?validationToken=abc%20123")

    assert response.status_code == 200
    assert response.text == "abc 123"
    assert response.headers["content-type"].startswith("text/plain")


def test_graph_notifications_import_messages(client, repo) -> None:
    payload = {"value": [{"changeType": "created", "resourceData": {"id": "AAMk-1"}}]}

    response = client.post("/api/v1/webhooks/email", json=payload)

    assert response.status_code == 200
    assert response.json()["received"] == 1
    assert len(repo.communications) == 1


def _event_loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def test_graph_fetch_runs_off_the_event_loop(client, repo) -> None:
    seen = []

    def _fetch(message_id):
        seen.append(_event_loop_running())
        return {
            "id": message_id,
            "subject": "Hello",
            "from": {"emailAddress": {"address": "amy@example.org"}},
            "body": {"contentType": "text", "content": "Hi"},
            "receivedDateTime": "2026-03-10T12:00:00Z",
        }

    app.dependency_overrides[get_webhook_hooks] = lambda: WebhookHooks(fetch_graph_message=_fetch)
    payload = {"value": [{"changeType": "created", "resourceData": {"id": "AAMk-2"}}]}

    response = client.post("/api/v1/webhooks/email", json=payload)

    assert response.status_code == 200
    assert seen == [False]


def test_transition_on_closed_item_returns_conflict(client, repo) -> None:
    item = repo.seed_work_item(status="closed_won", closed_at=FIXED_NOW)

    response = client.post(
        f"/api/v1/work-items/{item.id}/transition",
        json={"to_status": "in_design", "note": "reopen"},
    )

    assert response.status_code == 409
    assert response.json()["code"] == "WORK_ITEM_CLOSED"
    assert repo.status_events == []


def test_transition_returns_event_and_item(client, repo) -> None:
    item = repo.seed_work_item(status="new_inquiry")

    response = client.post(f"/api/v1/work-items/{item.id}/transition", json={"to_status": "info_sent"})

    body = response.json()
    assert response.status_code == 200
    assert body["work_item"]["status"] == "info_sent"
    assert body["event"]["from_status"] == "new_inquiry"
    assert body["event"]["changed_by"] == "user"


def test_status_options_group_statuses_for_the_item(client, repo) -> None:
    item = repo.seed_work_item(status="proof_sent")

    response = client.get(f"/api/v1/work-items/{item.id}/status-options")

    body = response.json()
    assert response.status_code == 200
    assert body["current_status"] == "proof_sent"
    assert body["is_closed"] is False
    options = {option["value"]: option for group in body["groups"] for option in group["statuses"]}
    assert options["proof_sent"]["current"] is True
    assert options["shipped"]["disabled"] is True
    assert options["closed_lost"]["requires_note"] is True


def test_snooze_response_reports_snoozed_until(client, repo) -> None:
    item = repo.seed_work_item(status="info_sent")

    response = client.post(f"/api/v1/work-items/{item.id}/snooze", json={"days": 7})

    body = response.json()
    assert response.status_code == 200
    assert body["snoozed_until"] is not None
    assert body["snoozed_until"] == body["next_follow_up_at"]


def test_cron_requires_configured_secret(client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    assert client.get("/api/v1/cron/recalculate-follow-ups").status_code == 500

    monkeypatch.setattr(settings, "CRON_SECRET", "tick")
    assert client.get("/api/v1/cron/recalculate-follow-ups").status_code == 401
    assert (
        client.get("/api/v1/cron/recalculate-follow-ups", headers={"Authorization": "Bearer wrong"}).status_code
        == 401
    )


def test_cron_recalculates_follow_ups(client, repo, monkeypatch) -> None:
    monkeypatch.setattr(settings, "CRON_SECRET", "tick")
    item = repo.seed_work_item(status="info_sent", next_follow_up_at=None)

    response = client.post("/api/v1/cron/recalculate-follow-ups", headers={"Authorization": "Bearer tick"})

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["updated"] == 1
    assert body["changes"][0]["work_item_id"] == str(item.id)


def test_manual_order_import_uses_fetcher_and_reports_duplicates(client, repo) -> None:
    app.dependency_overrides[get_order_fetcher] = lambda: (lambda order_id: dict(ORDER, id=int(order_id)))

    first = client.post("/api/v1/orders/import", json={"orderId": "5001"})
    second = client.post("/api/v1/orders/import", json={"orderId": "5001"})

    assert first.json()["action"] == "created"
    assert second.json()["action"] == "duplicate"
    assert second.json()["work_item_id"] == first.json()["work_item_id"]


def test_email_import_requires_message_or_id(client) -> None:
    response = client.post("/api/v1/emails/import", json={})

    assert response.status_code == 400
    assert response.json()["code"] == "EMAIL_IMPORT_INVALID"


def test_email_import_by_id_fetches_message(client, repo) -> None:
    response = client.post("/api/v1/emails/import", json={"messageId": "AAMk-7"})

    assert response.status_code == 200
    assert response.json()["action"] == "inserted"
    assert repo.find_communication_by_provider_message_id("AAMk-7") is not None
