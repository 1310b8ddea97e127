"""Thin Shopify Admin REST client and webhook signature check."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Any

import requests

from ..config import settings
from ..domain_errors import RemoteServiceError

logger = logging.getLogger(__name__)


def verify_shopify_hmac(request_body: bytes, hmac_header: str | None, secret: str) -> bool:
    """Compare X-Shopify-Hmac-Sha256 (base64 HMAC-SHA256 of the raw body)."""
    if not hmac_header:
        return False
    computed = base64.b64encode(
        hmac.new(secret.encode("utf-8"), request_body, hashlib.sha256).digest()
    ).decode("utf-8")
    return hmac.compare_digest(computed, hmac_header)


def _admin_url(path: str) -> str:
    if not settings.SHOPIFY_STORE_DOMAIN or not settings.SHOPIFY_ADMIN_API_TOKEN:
        raise RemoteServiceError("shopify", "Shopify credentials are not configured")
    return f"https://{settings.SHOPIFY_STORE_DOMAIN}/admin/api/{settings.SHOPIFY_API_VERSION}/{path}"


def fetch_order(order_id: str) -> dict[str, Any]:
    """GET /orders/{id}.json; raises RemoteServiceError on any failure."""
    url = _admin_url(f"orders/{order_id}.json")
    try:
        response = requests.get(
            url,
            headers={
                "X-Shopify-Access-Token": settings.SHOPIFY_ADMIN_API_TOKEN,
                "Content-Type": "application/json",
            },
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.warning(f"Shopify order fetch failed for {order_id}: {exc}")
        raise RemoteServiceError("shopify", f"Shopify request failed: {exc}") from exc

    if response.status_code == 404:
        raise RemoteServiceError("shopify", f"Order {order_id} not found in Shopify")
    if response.status_code != 200:
        raise RemoteServiceError("shopify", f"HTTP_{response.status_code}: {response.text[:200]}")

    order = response.json().get("order")
    if not order:
        raise RemoteServiceError("shopify", f"Order {order_id} missing from Shopify response")
    return order
