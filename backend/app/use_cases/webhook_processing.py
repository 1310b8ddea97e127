"""Webhook intake with an idempotency log.

Every delivery is first recorded with an atomic upsert on
``(provider, external_event_id)``. Processing only runs for the delivery that
wins the conditional claim, so concurrent retries of the same event cannot
both reach ``completed``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import UUID

from ..config import settings
from ..domain_errors import DomainError
from ..models import WebhookEvent
from ..repositories.base import OpsRepository
from ..services import graph_client
from ..services.webhook_state import (
    COMPLETED,
    FAILED,
    PROCESSING,
    SKIPPED,
    can_reprocess,
    validate_webhook_transition,
)
from .common import now_utc
from .email_import import ERROR, IncomingEmail, import_email_use_case
from .order_import import REJECTED_NOT_CUSTOM, WEBHOOK, import_order_use_case, mark_order_shipped

logger = logging.getLogger(__name__)

SHOPIFY = "shopify"
M365 = "m365"
ORDER_TOPICS: frozenset[str] = frozenset({"orders/create", "orders/updated"})
FULFILLMENT_TOPICS: frozenset[str] = frozenset({"fulfillments/create", "orders/fulfilled"})
GRAPH_MESSAGE_CREATED = "message.created"


@dataclass(frozen=True)
class WebhookHooks:
    """Remote fetchers used while processing; replaced in tests."""

    fetch_graph_message: Callable[[str], dict[str, Any]] = graph_client.fetch_message


@dataclass(frozen=True)
class WebhookReceipt:
    webhook_event_id: UUID | None
    status: str
    processed: bool
    message: str | None = None


def shopify_external_event_id(*, webhook_id: str | None, topic: str, payload: dict[str, Any]) -> str:
    """Shopify's delivery id; ``<topic>:<payload id>`` when the header is missing."""
    if webhook_id:
        return webhook_id
    return f"{topic}:{payload.get('id')}"


def _order_id_for_fulfillment(topic: str, payload: dict[str, Any]) -> str | None:
    if topic == "fulfillments/create":
        order_id = payload.get("order_id")
    else:
        order_id = payload.get("id")
    return str(order_id) if order_id else None


def _process_shopify(
    *,
    repo: OpsRepository,
    event: WebhookEvent,
    now: datetime,
) -> tuple[str, str | None]:
    topic = event.event_type
    payload = event.payload or {}

    if topic in ORDER_TOPICS:
        result = import_order_use_case(repo=repo, order=payload, mode=WEBHOOK, now=now)
        if result.action == REJECTED_NOT_CUSTOM:
            return SKIPPED, "Not a custom order"
        return COMPLETED, f"{result.action}:{result.work_item_id}"

    if topic in FULFILLMENT_TOPICS:
        order_id = _order_id_for_fulfillment(topic, payload)
        if not order_id:
            raise DomainError(
                code="WEBHOOK_PAYLOAD_INVALID",
                http_status=400,
                message="Fulfillment payload has no order id",
            )
        item = mark_order_shipped(
            repo=repo,
            order_id=order_id,
            fulfillment_status=payload.get("fulfillment_status") or payload.get("status"),
            now=now,
        )
        if item is None:
            return SKIPPED, f"No open work item for order {order_id}"
        repo.commit()
        return COMPLETED, f"shipped:{item.id}"

    return SKIPPED, f"Unhandled topic {topic}"


def _process_graph(
    *,
    repo: OpsRepository,
    event: WebhookEvent,
    hooks: WebhookHooks,
    now: datetime,
) -> tuple[str, str | None]:
    payload = event.payload or {}
    message_id = (payload.get("resourceData") or {}).get("id") or graph_client.message_id_from_resource(
        payload.get("resource")
    )
    if not message_id:
        raise DomainError(
            code="WEBHOOK_PAYLOAD_INVALID",
            http_status=400,
            message="Notification has no message id",
        )
    message = IncomingEmail.from_graph_message(hooks.fetch_graph_message(message_id))
    result = import_email_use_case(repo=repo, message=message, now=now)
    if result.action == ERROR:
        raise DomainError(
            code="EMAIL_IMPORT_FAILED",
            http_status=500,
            message=result.error or "Email import failed",
        )
    return COMPLETED, f"{result.action}:{result.communication_id}"


def process_webhook_event(
    *,
    repo: OpsRepository,
    event: WebhookEvent,
    hooks: WebhookHooks,
    now: datetime,
) -> tuple[str, str | None]:
    if event.provider == SHOPIFY:
        return _process_shopify(repo=repo, event=event, now=now)
    if event.provider == M365 and event.event_type == GRAPH_MESSAGE_CREATED:
        return _process_graph(repo=repo, event=event, hooks=hooks, now=now)
    return SKIPPED, f"Unhandled event {event.provider}/{event.event_type}"


def _run_claimed(
    *,
    repo: OpsRepository,
    event: WebhookEvent,
    hooks: WebhookHooks,
    now: datetime,
) -> WebhookReceipt:
    try:
        status, message = process_webhook_event(repo=repo, event=event, hooks=hooks, now=now)
        validate_webhook_transition(current_status=PROCESSING, next_status=status)
    except Exception as exc:
        repo.rollback()
        logger.error(f"Webhook {event.provider}/{event.event_type} {event.external_event_id} failed: {exc}", exc_info=True)
        repo.finish_webhook_event(event.id, status=FAILED, error=str(exc)[:2000], now=now)
        repo.commit()
        return WebhookReceipt(webhook_event_id=event.id, status=FAILED, processed=True, message=str(exc))

    finished = repo.finish_webhook_event(
        event.id, status=status, error=message if status == SKIPPED else None, now=now
    )
    repo.commit()
    if not finished:
        logger.warning(f"Webhook {event.id} lease was taken over before it finished; result not recorded")
    logger.info(f"Webhook {event.provider}/{event.event_type} {event.external_event_id}: {status}")
    return WebhookReceipt(webhook_event_id=event.id, status=status, processed=True, message=message)


def _stale_before(now: datetime, stale_after_seconds: int | None) -> datetime:
    seconds = stale_after_seconds if stale_after_seconds is not None else settings.WEBHOOK_PROCESSING_STALE_SECONDS
    return now - timedelta(seconds=seconds)


def receive_webhook_use_case(
    *,
    repo: OpsRepository,
    provider: str,
    event_type: str,
    external_event_id: str,
    payload: dict[str, Any],
    hooks: WebhookHooks | None = None,
    now: datetime | None = None,
    stale_after_seconds: int | None = None,
) -> WebhookReceipt:
    current = now or now_utc()
    event = repo.upsert_webhook_event(
        provider=provider,
        event_type=event_type,
        external_event_id=external_event_id,
        payload=payload,
        now=current,
    )
    repo.commit()

    if event.processing_status == COMPLETED:
        logger.info(f"Webhook {provider} {external_event_id} already processed")
        return WebhookReceipt(webhook_event_id=event.id, status=COMPLETED, processed=False, message="Already processed")

    claimed = repo.claim_webhook_event(event.id, now=current, stale_before=_stale_before(current, stale_after_seconds))
    repo.commit()
    if not claimed:
        logger.info(f"Webhook {provider} {external_event_id} is {event.processing_status}; acknowledging")
        return WebhookReceipt(
            webhook_event_id=event.id,
            status=event.processing_status,
            processed=False,
            message="Already in progress or finished",
        )

    return _run_claimed(repo=repo, event=event, hooks=hooks or WebhookHooks(), now=current)


def receive_graph_notifications_use_case(
    *,
    repo: OpsRepository,
    notifications: list[dict[str, Any]],
    hooks: WebhookHooks | None = None,
    now: datetime | None = None,
) -> list[WebhookReceipt]:
    receipts: list[WebhookReceipt] = []
    for notification in notifications:
        if notification.get("changeType") != "created":
            continue
        message_id = (notification.get("resourceData") or {}).get("id") or graph_client.message_id_from_resource(
            notification.get("resource")
        )
        if not message_id:
            logger.warning(f"Graph notification without message id: {notification.get('resource')}")
            continue
        receipts.append(
            receive_webhook_use_case(
                repo=repo,
                provider=M365,
                event_type=GRAPH_MESSAGE_CREATED,
                external_event_id=message_id,
                payload=notification,
                hooks=hooks,
                now=now,
            )
        )
    return receipts


def reprocess_webhook_use_case(
    *,
    repo: OpsRepository,
    webhook_event_id: UUID,
    hooks: WebhookHooks | None = None,
    now: datetime | None = None,
    max_retries: int | None = None,
    stale_after_seconds: int | None = None,
) -> WebhookReceipt:
    current = now or now_utc()
    limit = max_retries if max_retries is not None else settings.WEBHOOK_MAX_RETRIES
    event = repo.get_webhook_event(webhook_event_id)
    if not event:
        raise DomainError(
            code="WEBHOOK_NOT_FOUND",
            http_status=404,
            message="Webhook event not found",
        )

    allowed, reason = can_reprocess(status=event.processing_status, retry_count=event.retry_count, max_retries=limit)
    if not allowed:
        raise DomainError(
            code="WEBHOOK_NOT_REPROCESSABLE",
            http_status=409,
            message=reason or "Webhook cannot be reprocessed",
            details={"status": event.processing_status, "retryCount": event.retry_count},
        )

    claimed = repo.claim_webhook_event(
        event.id,
        now=current,
        stale_before=_stale_before(current, stale_after_seconds),
        count_retry=True,
    )
    repo.commit()
    if not claimed:
        raise DomainError(
            code="WEBHOOK_IN_PROGRESS",
            http_status=409,
            message="Webhook is currently being processed",
        )
    logger.info(f"Reprocessing webhook {event.id} (attempt {event.retry_count + 1}/{limit})")
    return _run_claimed(repo=repo, event=event, hooks=hooks or WebhookHooks(), now=current)


def retry_failed_webhooks_use_case(
    *,
    repo: OpsRepository,
    hooks: WebhookHooks | None = None,
    now: datetime | None = None,
    max_retries: int | None = None,
    limit: int = 50,
) -> list[WebhookReceipt]:
    retry_limit = max_retries if max_retries is not None else settings.WEBHOOK_MAX_RETRIES
    receipts: list[WebhookReceipt] = []
    for event in repo.list_webhook_events(statuses=[FAILED], max_retry_count=retry_limit, limit=limit):
        try:
            receipts.append(
                reprocess_webhook_use_case(
                    repo=repo,
                    webhook_event_id=event.id,
                    hooks=hooks,
                    now=now,
                    max_retries=retry_limit,
                )
            )
        except DomainError as exc:
            logger.warning(f"Skipping retry of webhook {event.id}: {exc.message}")
    return receipts


def list_failed_webhooks_use_case(*, repo: OpsRepository, limit: int = 100) -> list[WebhookEvent]:
    return repo.list_webhook_events(statuses=[FAILED], limit=limit)
