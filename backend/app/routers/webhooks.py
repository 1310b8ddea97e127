"""Inbound webhook endpoints (Shopify, Microsoft Graph) and replay tools."""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from ..config import settings
from ..domain_errors import DomainError
from ..repositories import OpsRepository, get_repository
from ..schemas import ReprocessRequest, WebhookEventResponse, WebhookReceiptResponse
from ..services.shopify_client import verify_shopify_hmac
from ..use_cases.webhook_processing import (
    SHOPIFY,
    WebhookHooks,
    list_failed_webhooks_use_case,
    receive_graph_notifications_use_case,
    receive_webhook_use_case,
    reprocess_webhook_use_case,
    shopify_external_event_id,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_webhook_hooks() -> WebhookHooks:
    return WebhookHooks()


def _json_body(raw: bytes) -> dict:
    try:
        body = json.loads(raw or b"{}")
    except ValueError as exc:
        raise DomainError(
            code="WEBHOOK_PAYLOAD_INVALID",
            http_status=400,
            message="Request body is not valid JSON",
        ) from exc
    if not isinstance(body, dict):
        raise DomainError(
            code="WEBHOOK_PAYLOAD_INVALID",
            http_status=400,
            message="Request body must be a JSON object",
        )
    return body


@router.post("/shopify", response_model=WebhookReceiptResponse)
async def shopify_webhook(
    request: Request,
    repo: OpsRepository = Depends(get_repository),
    hooks: WebhookHooks = Depends(get_webhook_hooks),
):
    """Log the delivery, then process it at most once."""
    raw = await request.body()
    if settings.SHOPIFY_WEBHOOK_SECRET:
        if not verify_shopify_hmac(raw, request.headers.get("X-Shopify-Hmac-Sha256"), settings.SHOPIFY_WEBHOOK_SECRET):
            logger.warning("Rejected Shopify webhook with invalid signature")
            raise DomainError(
                code="WEBHOOK_SIGNATURE_INVALID",
                http_status=401,
                message="Invalid webhook signature",
            )

    payload = _json_body(raw)
    topic = request.headers.get("X-Shopify-Topic") or "unknown"
    external_id = shopify_external_event_id(
        webhook_id=request.headers.get("X-Shopify-Webhook-Id"),
        topic=topic,
        payload=payload,
    )
    return await run_in_threadpool(
        receive_webhook_use_case,
        repo=repo,
        provider=SHOPIFY,
        event_type=topic,
        external_event_id=external_id,
        payload=payload,
        hooks=hooks,
    )


@router.post("/email")
async def email_webhook(
    request: Request,
    validation_token: str | None = Query(default=None, alias="validationToken"),
    repo: OpsRepository = Depends(get_repository),
    hooks: WebhookHooks = Depends(get_webhook_hooks),
):
    """Graph change notifications; echoes the subscription validation token."""
    if validation_token:
        return PlainTextResponse(content=validation_token)

    body = _json_body(await request.body())
    receipts = await run_in_threadpool(
        receive_graph_notifications_use_case,
        repo=repo,
        notifications=list(body.get("value") or []),
        hooks=hooks,
    )
    return {
        "received": len(receipts),
        "results": [WebhookReceiptResponse.model_validate(receipt) for receipt in receipts],
    }


@router.post("/reprocess", response_model=WebhookReceiptResponse)
def reprocess_webhook(
    data: ReprocessRequest,
    repo: OpsRepository = Depends(get_repository),
    hooks: WebhookHooks = Depends(get_webhook_hooks),
):
    return reprocess_webhook_use_case(repo=repo, webhook_event_id=data.webhook_id, hooks=hooks)


@router.get("/failed", response_model=list[WebhookEventResponse])
def failed_webhooks(
    limit: int = Query(default=100, ge=1, le=500),
    repo: OpsRepository = Depends(get_repository),
):
    """Dead letter queue: failed deliveries, newest first."""
    return list_failed_webhooks_use_case(repo=repo, limit=limit)
