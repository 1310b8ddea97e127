"""Shopify order classification and line-item extraction.

All functions are pure: they take the raw order payload (as delivered by the
webhook or the Admin REST API) and never touch persistence.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from .work_item_status import CUSTOM_BULK_ORDER, CUSTOM_DESIGN_SERVICE, CUSTOMIFY_ORDER

DESIGN_SERVICE_PHRASES: tuple[str, ...] = (
    "professional custom fan design service",
    "custom fan design service",
    "design service & credit",
    "custom fan designer",
)
BULK_ORDER_PHRASES: tuple[str, ...] = ("bulk order", "bulk fan", "custom bulk")
CONFIGURATOR_TOKEN = "customify"
PERSONALIZATION_TOKEN = "personalization"

_TITLE_QUANTITY_RE = re.compile(r"\(\s*(\d+)\s*(?:units|fans)\b", re.IGNORECASE)
_GRIP_COLOR_NAMES = {"grip_color", "grip color"}


def _line_items(order: dict[str, Any]) -> list[dict[str, Any]]:
    return list(order.get("line_items") or [])


def _title(item: dict[str, Any]) -> str:
    return (item.get("title") or "").lower()


def line_item_properties(item: dict[str, Any]) -> list[tuple[str, Any]]:
    """Normalize line-item properties to (name, value) pairs.

    The REST API returns ``[{"name": ..., "value": ...}]``; some payloads carry
    a plain mapping instead.
    """
    props = item.get("properties")
    if isinstance(props, dict):
        return [(str(name), value) for name, value in props.items()]
    if isinstance(props, list):
        return [
            (str(prop.get("name") or ""), prop.get("value"))
            for prop in props
            if isinstance(prop, dict)
        ]
    return []


def _property_names(item: dict[str, Any]) -> Iterable[str]:
    return (name.lower() for name, _value in line_item_properties(item))


def _is_design_service_item(item: dict[str, Any]) -> bool:
    title = _title(item)
    if any(phrase in title for phrase in DESIGN_SERVICE_PHRASES):
        return True
    return any(PERSONALIZATION_TOKEN in name for name in _property_names(item))


def _is_configurator_item(item: dict[str, Any]) -> bool:
    if CONFIGURATOR_TOKEN in _title(item):
        return True
    return any(CONFIGURATOR_TOKEN in name for name in _property_names(item))


def _is_bulk_item(item: dict[str, Any]) -> bool:
    title = _title(item)
    return any(phrase in title for phrase in BULK_ORDER_PHRASES)


def is_custom_line_item(item: dict[str, Any]) -> bool:
    return _is_design_service_item(item) or _is_configurator_item(item) or _is_bulk_item(item)


def _tags(order: dict[str, Any]) -> str:
    tags = order.get("tags") or ""
    if isinstance(tags, (list, tuple)):
        tags = ", ".join(str(tag) for tag in tags)
    return str(tags).lower()


def detect_order_type(order: dict[str, Any]) -> str | None:
    """Return the custom order type, or None for orders the ops team ignores.

    Precedence is evaluated across all line items before moving to the next
    rule, so a design-service line wins over configurator properties on a
    sibling line.
    """
    items = _line_items(order)

    if any(_is_design_service_item(item) for item in items):
        return CUSTOM_DESIGN_SERVICE
    if any(_is_configurator_item(item) for item in items):
        return CUSTOMIFY_ORDER
    if any(_is_bulk_item(item) for item in items):
        return CUSTOM_BULK_ORDER

    tags = _tags(order)
    if CONFIGURATOR_TOKEN in tags:
        return CUSTOMIFY_ORDER
    if "custom bulk" in tags:
        return CUSTOM_BULK_ORDER
    if "custom design" in tags:
        return CUSTOM_DESIGN_SERVICE

    return None


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def line_item_quantity(item: dict[str, Any]) -> int:
    match = _TITLE_QUANTITY_RE.search(item.get("title") or "")
    if match:
        return int(match.group(1))
    return _to_int(item.get("quantity"))


def extract_custom_quantity(order: dict[str, Any]) -> int:
    """Sum units across custom line items; add-on inventory lines do not count."""
    return sum(line_item_quantity(item) for item in _line_items(order) if is_custom_line_item(item))


def extract_grip_color(order: dict[str, Any]) -> str | None:
    for item in _line_items(order):
        for name, value in line_item_properties(item):
            if name.strip().lower() in _GRIP_COLOR_NAMES and value:
                return str(value)
    return None


def customer_email(order: dict[str, Any]) -> str | None:
    customer = order.get("customer") or {}
    email = customer.get("email") or order.get("email")
    return email.strip().lower() if email else None


def customer_name(order: dict[str, Any]) -> str | None:
    customer = order.get("customer") or {}
    name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    return name or None


def order_reference(order: dict[str, Any]) -> tuple[str, str | None]:
    """(order id as string, display name such as ``#6540``)."""
    return str(order["id"]), order.get("name")
