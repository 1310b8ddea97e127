from __future__ import annotations

import base64
import hashlib
import hmac
from types import SimpleNamespace

import pytest
import requests

from app.config import settings
from app.domain_errors import RemoteServiceError
from app.services import graph_client, shopify_client
from app.services.html_text import html_to_plain_text, smart_truncate


def _response(status_code=200, payload=None, text=""):
    return SimpleNamespace(status_code=status_code, json=lambda: payload or {}, text=text)


def test_shopify_hmac_matches_base64_digest() -> None:
    body = b'{"id": 1}'
    signature = base64.b64encode(hmac.new(b"secret", body, hashlib.sha256).digest()).decode("utf-8")

    assert shopify_client.verify_shopify_hmac(body, signature, "secret")
    assert not shopify_client.verify_shopify_hmac(body + b" ", signature, "secret")
    assert not shopify_client.verify_shopify_hmac(body, None, "secret")


def test_fetch_order_returns_order_payload(monkeypatch) -> None:
    monkeypatch.setattr(settings, "SHOPIFY_STORE_DOMAIN", "shop.myshopify.com")
    monkeypatch.setattr(settings, "SHOPIFY_ADMIN_API_TOKEN", "token")
    calls = []

    def _get(url, **kwargs):
        calls.append((url, kwargs["headers"]["X-Shopify-Access-Token"]))
        return _response(payload={"order": {"id": 5001}})

    monkeypatch.setattr(shopify_client.requests, "get", _get)

    assert shopify_client.fetch_order("5001") == {"id": 5001}
    assert calls[0][0].endswith("/orders/5001.json")
    assert calls[0][1] == "token"


def test_fetch_order_wraps_http_and_transport_errors(monkeypatch) -> None:
    monkeypatch.setattr(settings, "SHOPIFY_STORE_DOMAIN", "shop.myshopify.com")
    monkeypatch.setattr(settings, "SHOPIFY_ADMIN_API_TOKEN", "token")

    monkeypatch.setattr(shopify_client.requests, "get", lambda *a, **k: _response(status_code=404))
    with pytest.raises(RemoteServiceError) as not_found:
        shopify_client.fetch_order("1")

    def _boom(*_args, **_kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(shopify_client.requests, "get", _boom)
    with pytest.raises(RemoteServiceError) as unreachable:
        shopify_client.fetch_order("1")

    assert not_found.value.code == "SHOPIFY_UNAVAILABLE"
    assert unreachable.value.http_status == 502


def test_fetch_order_without_credentials_fails_fast(monkeypatch) -> None:
    monkeypatch.setattr(settings, "SHOPIFY_ADMIN_API_TOKEN", None)
    with pytest.raises(RemoteServiceError):
        shopify_client.fetch_order("1")


def test_graph_fetch_message_uses_app_token(monkeypatch) -> None:
    monkeypatch.setattr(settings, "MICROSOFT_TENANT_ID", "tenant")
    monkeypatch.setattr(settings, "MICROSOFT_CLIENT_ID", "client")
    monkeypatch.setattr(settings, "MICROSOFT_CLIENT_SECRET", "secret")
    monkeypatch.setattr(graph_client.requests, "post", lambda *a, **k: _response(payload={"access_token": "tok"}))
    seen = {}

    def _get(url, **kwargs):
        seen["url"] = url
        seen["auth"] = kwargs["headers"]["Authorization"]
        return _response(payload={"id": "AAMk-1"})

    monkeypatch.setattr(graph_client.requests, "get", _get)

    assert graph_client.fetch_message("AAMk-1", mailbox="ops@example.com") == {"id": "AAMk-1"}
    assert seen["url"].endswith("/users/ops@example.com/messages/AAMk-1")
    assert seen["auth"] == "Bearer tok"


def test_message_id_from_resource() -> None:
    assert graph_client.message_id_from_resource("Users/abc/Messages/AAMk-1") == "AAMk-1"
    assert graph_client.message_id_from_resource("Users/abc") is None
    assert graph_client.message_id_from_resource(None) is None


def test_html_to_plain_text_keeps_block_breaks() -> None:
    html = "<style>p{}</style><p>Hello&nbsp;<b>Amy</b></p><p>Line&amp;two</p>"
    assert html_to_plain_text(html) == "Hello Amy\nLine&two"


def test_smart_truncate_cuts_on_word_boundary() -> None:
    text = "word " * 200
    truncated = smart_truncate(text, limit=50)
    assert truncated.endswith("...")
    assert len(truncated) <= 53
    assert smart_truncate("short text") == "short text"
