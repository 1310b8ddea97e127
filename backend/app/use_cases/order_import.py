"""Shopify order import: classify, dedupe, attach to an existing project or create."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from ..domain_errors import DomainError, DuplicateRecordError
from ..models import WorkItem
from ..repositories.base import OpsRepository
from ..services import shopify_client
from ..services.follow_up import DEFAULT_POLICY, FollowUpPolicy
from ..services.order_classifier import (
    customer_email,
    customer_name,
    detect_order_type,
    extract_custom_quantity,
    extract_grip_color,
    order_reference,
)
from ..services.work_item_status import (
    ASSISTED_PROJECT,
    CUSTOM_BULK_ORDER,
    CUSTOM_DESIGN_SERVICE,
    is_allowed_edge,
    is_forward_move,
    status_for_order,
    work_item_type_for_order,
)
from .common import now_utc, system_actor
from .email_linking import auto_link_customer_emails
from .follow_ups import recompute_follow_up
from .work_item_transitions import apply_status_change, record_initial_status

logger = logging.getLogger(__name__)

MANUAL = "manual"
WEBHOOK = "webhook"

CREATED = "created"
UPDATED = "updated"
LINKED = "linked"
DUPLICATE = "duplicate"
REJECTED_NOT_CUSTOM = "rejected_not_custom"

# Assisted projects that can still receive a design fee order.
PRE_FEE_STATUSES: frozenset[str] = frozenset(
    {"new_inquiry", "info_sent", "future_event_monitoring", "design_fee_sent"}
)
# Assisted projects waiting for their production (bulk) order.
AWAITING_PRODUCTION_STATUSES: frozenset[str] = frozenset(
    {"design_fee_paid", "in_design", "proof_sent", "awaiting_approval", "invoice_sent"}
)

_TITLE_PREFIX = {
    CUSTOM_DESIGN_SERVICE: "Custom Design Service",
    CUSTOM_BULK_ORDER: "Custom Bulk Order",
}


@dataclass(frozen=True)
class ImportOrderResult:
    action: str
    work_item_id: UUID | None = None
    order_type: str | None = None
    emails_linked: int = 0
    message: str | None = None


def _parse_order_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _advance_for_payment(
    *,
    repo: OpsRepository,
    item: WorkItem,
    order_type: str,
    financial_status: str | None,
    now: datetime,
    policy: FollowUpPolicy,
) -> None:
    """Move the item to the payment-derived status when that is a forward step."""
    target = status_for_order(order_type, financial_status)
    if item.closed_at is not None or target == item.status:
        return
    on_graph = is_allowed_edge(work_item_type=item.type, current_status=item.status, next_status=target)
    forward = is_forward_move(work_item_type=item.type, current_status=item.status, next_status=target)
    if not (on_graph or forward):
        logger.info(f"Work item {item.id}: not moving {item.status} -> {target} (not forward)")
        return
    apply_status_change(
        repo=repo,
        item=item,
        to_status=target,
        changed_by=system_actor("shopify"),
        note=f"Shopify financial status: {financial_status or 'unknown'}",
        is_system=True,
        now=now,
        policy=policy,
    )


def _refresh_existing(
    *,
    repo: OpsRepository,
    item: WorkItem,
    order: dict[str, Any],
    order_type: str,
    now: datetime,
    policy: FollowUpPolicy,
) -> None:
    item.shopify_financial_status = order.get("financial_status")
    item.shopify_fulfillment_status = order.get("fulfillment_status")
    item.updated_at = now
    _advance_for_payment(
        repo=repo,
        item=item,
        order_type=order_type,
        financial_status=order.get("financial_status"),
        now=now,
        policy=policy,
    )
    repo.save_work_item(item)


def _find_project_for_order(*, repo: OpsRepository, order_type: str, email: str | None) -> WorkItem | None:
    if not email:
        return None
    projects = repo.list_open_work_items_for_email(email, work_item_type=ASSISTED_PROJECT)
    if order_type == CUSTOM_DESIGN_SERVICE:
        candidates = [p for p in projects if not p.design_fee_order_id and p.status in PRE_FEE_STATUSES]
    elif order_type == CUSTOM_BULK_ORDER:
        candidates = [p for p in projects if not p.shopify_order_id and p.status in AWAITING_PRODUCTION_STATUSES]
    else:
        return None
    return candidates[-1] if candidates else None


def _attach_to_project(
    *,
    repo: OpsRepository,
    item: WorkItem,
    order: dict[str, Any],
    order_type: str,
    now: datetime,
    policy: FollowUpPolicy,
) -> None:
    order_id, order_name = order_reference(order)
    if order_type == CUSTOM_DESIGN_SERVICE:
        item.design_fee_order_id = order_id
        item.design_fee_order_number = order_name
    else:
        item.shopify_order_id = order_id
        item.shopify_order_number = order_name
        item.quantity = extract_custom_quantity(order) or item.quantity
        item.grip_color = extract_grip_color(order) or item.grip_color
    item.shopify_financial_status = order.get("financial_status")
    item.shopify_fulfillment_status = order.get("fulfillment_status")
    item.updated_at = now
    repo.save_work_item(item)
    _advance_for_payment(
        repo=repo,
        item=item,
        order_type=order_type,
        financial_status=order.get("financial_status"),
        now=now,
        policy=policy,
    )


def _build_work_item(*, order: dict[str, Any], order_type: str, now: datetime) -> WorkItem:
    order_id, order_name = order_reference(order)
    email = customer_email(order)
    name = customer_name(order)
    status = status_for_order(order_type, order.get("financial_status"))
    prefix = _TITLE_PREFIX.get(order_type, "Customify Order")

    item = WorkItem(
        id=uuid.uuid4(),
        type=work_item_type_for_order(order_type),
        source="shopify",
        title=f"{prefix} {order_name or order_id} - {name or email or 'Unknown customer'}",
        shopify_financial_status=order.get("financial_status"),
        shopify_fulfillment_status=order.get("fulfillment_status"),
        customer_email=email,
        customer_name=name,
        alternate_emails=[],
        quantity=extract_custom_quantity(order) or None,
        grip_color=extract_grip_color(order),
        status=status,
        status_changed_at=now,
        is_waiting=False,
        reason_included={
            "detectedVia": "shopify_order",
            "orderType": order_type,
            "orderName": order_name,
            "tags": order.get("tags"),
        },
        created_at=now,
        updated_at=now,
    )
    if order_type == CUSTOM_DESIGN_SERVICE:
        item.design_fee_order_id = order_id
        item.design_fee_order_number = order_name
    else:
        item.shopify_order_id = order_id
        item.shopify_order_number = order_name
    return item


def import_order_use_case(
    *,
    repo: OpsRepository,
    order: dict[str, Any],
    mode: str = MANUAL,
    now: datetime | None = None,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> ImportOrderResult:
    current = now or now_utc()
    if not order.get("id"):
        raise DomainError(
            code="ORDER_ID_MISSING",
            http_status=400,
            message="Order payload has no id",
        )
    order_type = detect_order_type(order)
    order_id, order_name = order_reference(order)
    if order_type is None:
        logger.info(f"Order {order_name or order_id} is not a custom order; skipping")
        return ImportOrderResult(action=REJECTED_NOT_CUSTOM, message="Not a custom order")

    existing = repo.find_work_item_by_order_id(order_id)
    if existing:
        if mode == MANUAL:
            return ImportOrderResult(action=DUPLICATE, work_item_id=existing.id, order_type=order_type)
        if existing.closed_at is not None:
            logger.info(f"Order {order_name or order_id} belongs to closed work item {existing.id}; ignoring")
            return ImportOrderResult(
                action=DUPLICATE,
                work_item_id=existing.id,
                order_type=order_type,
                message="Work item is closed",
            )
        _refresh_existing(repo=repo, item=existing, order=order, order_type=order_type, now=current, policy=policy)
        repo.commit()
        return ImportOrderResult(action=UPDATED, work_item_id=existing.id, order_type=order_type)

    email = customer_email(order)
    project = _find_project_for_order(repo=repo, order_type=order_type, email=email)
    if project:
        _attach_to_project(repo=repo, item=project, order=order, order_type=order_type, now=current, policy=policy)
        item, action = project, LINKED
        logger.info(f"Order {order_name} attached to assisted project {project.id}")
    else:
        item = _build_work_item(order=order, order_type=order_type, now=current)
        recompute_follow_up(item, now=current, policy=policy)
        try:
            repo.add_work_item(item)
        except DuplicateRecordError:
            repo.rollback()
            winner = repo.find_work_item_by_order_id(order_id)
            logger.info(f"Order {order_name} created concurrently; reusing {winner.id if winner else None}")
            if winner is not None and mode == WEBHOOK and winner.closed_at is None:
                _refresh_existing(repo=repo, item=winner, order=order, order_type=order_type, now=current, policy=policy)
                repo.commit()
                return ImportOrderResult(action=UPDATED, work_item_id=winner.id, order_type=order_type)
            return ImportOrderResult(
                action=DUPLICATE,
                work_item_id=winner.id if winner else None,
                order_type=order_type,
            )
        record_initial_status(
            repo=repo,
            item=item,
            changed_by=system_actor("shopify"),
            now=current,
            note=f"Imported from Shopify order {order_name or order_id}",
        )
        action = CREATED
        logger.info(f"Created work item {item.id} ({order_type}) for order {order_name}")

    emails_linked = auto_link_customer_emails(
        repo=repo,
        item=item,
        order_created_at=_parse_order_datetime(order.get("created_at")),
        cap_at_now=order_type == CUSTOM_DESIGN_SERVICE,
        now=current,
    )
    if emails_linked and item.last_contact_at is None:
        item.last_contact_at = current
    recompute_follow_up(item, now=current, policy=policy)
    repo.save_work_item(item)
    repo.commit()
    return ImportOrderResult(action=action, work_item_id=item.id, order_type=order_type, emails_linked=emails_linked)


def import_order_by_id_use_case(
    *,
    repo: OpsRepository,
    order_id: str,
    fetch_order: Callable[[str], dict[str, Any]] = shopify_client.fetch_order,
    now: datetime | None = None,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> ImportOrderResult:
    order = fetch_order(order_id)
    return import_order_use_case(repo=repo, order=order, mode=MANUAL, now=now, policy=policy)


def mark_order_shipped(
    *,
    repo: OpsRepository,
    order_id: str,
    fulfillment_status: str | None,
    now: datetime,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> WorkItem | None:
    """System transition to ``shipped``; None when no open item holds the order.

    Only production orders ship. A design fee order id never matches here.
    """
    item = repo.find_work_item_by_production_order_id(order_id)
    if item is None or item.closed_at is not None:
        return None
    item.shopify_fulfillment_status = fulfillment_status or "fulfilled"
    item.updated_at = now
    apply_status_change(
        repo=repo,
        item=item,
        to_status="shipped",
        changed_by=system_actor("shopify"),
        note="Shopify fulfillment created",
        is_system=True,
        now=now,
        policy=policy,
    )
    return item
