"""Inbox category heuristics (notifications / promotional / primary)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

PRIMARY = "primary"
PROMOTIONAL = "promotional"
SPAM = "spam"
NOTIFICATIONS = "notifications"
EMAIL_CATEGORIES: tuple[str, ...] = (PRIMARY, PROMOTIONAL, SPAM, NOTIFICATIONS)

_NO_REPLY_MARKERS = ("no-reply", "noreply", "do-not-reply")
_NOTIFICATION_SENDERS = (
    "@shopify.com",
    "@judge.me",
    "@faire.com",
    "@info.faire.com",
    "@stripe.com",
    "@paypal.com",
    "@shipstation.com",
    "@notifications.",
    "@alerts.",
)
_TRANSACTIONAL_SUBJECT = (
    "order #",
    "order confirmation",
    "order placed",
    "order received",
    "tracking",
    "shipped",
    "delivered",
    "invoice",
    "receipt",
    "payment received",
    "payment confirmation",
    "refund",
    "return authorization",
)
_TRANSACTIONAL_BODY = ("order #", "tracking number", "shipment notification", "your order has")

_UNSUBSCRIBE_MARKERS = ("unsubscribe", "opt out", "list-unsubscribe")
_MARKETING_SENDERS = ("@email.", "@marketing.", "@newsletter.", "@promo.", "@mail.")
_MARKETING_SUBJECT_RE = re.compile(
    r"\b(?:sale|discount|deal|offer|limited time|expires|don't miss|last chance|newsletter|"
    r"new arrivals|just in|trending|shop now|buy now|free shipping|exclusive)\b"
    r"|% off|percent off"
)
_MARKETING_EMOJI = ("\U0001F381", "\U0001F389", "\U0001F4B0")


@dataclass(frozen=True)
class CategoryDecision:
    category: str
    reason: str


def _lower(value: str | None) -> str:
    return (value or "").lower()


def explain_categorization(
    *,
    from_email: str,
    subject: str | None = None,
    body_text: str | None = None,
    body_html: str | None = None,
) -> CategoryDecision:
    sender = _lower(from_email)
    subj = _lower(subject)
    text = _lower(body_text)
    html = _lower(body_html)

    if any(marker in sender for marker in _NO_REPLY_MARKERS):
        return CategoryDecision(NOTIFICATIONS, "No-reply sender")
    if any(domain in sender for domain in _NOTIFICATION_SENDERS):
        return CategoryDecision(NOTIFICATIONS, "Known notification sender")
    if any(keyword in subj for keyword in _TRANSACTIONAL_SUBJECT):
        return CategoryDecision(NOTIFICATIONS, "Transactional subject")
    if any(pattern in text for pattern in _TRANSACTIONAL_BODY):
        return CategoryDecision(NOTIFICATIONS, "Transactional body")

    if any(marker in html or marker in text for marker in _UNSUBSCRIBE_MARKERS):
        return CategoryDecision(PROMOTIONAL, "Contains unsubscribe link")
    if any(domain in sender for domain in _MARKETING_SENDERS):
        return CategoryDecision(PROMOTIONAL, "Bulk mail sender domain")
    if _MARKETING_SUBJECT_RE.search(subj) or any(emoji in (subject or "") for emoji in _MARKETING_EMOJI):
        return CategoryDecision(PROMOTIONAL, "Marketing subject")

    return CategoryDecision(PRIMARY, "Default (likely customer inquiry)")


def categorize_email(
    *,
    from_email: str,
    subject: str | None = None,
    body_text: str | None = None,
    body_html: str | None = None,
) -> str:
    return explain_categorization(
        from_email=from_email,
        subject=subject,
        body_text=body_text,
        body_html=body_html,
    ).category


def match_filter_category(from_email: str, filters: Iterable[object]) -> str | None:
    """Category of the first active filter matching the sender.

    Exact-address filters beat domain filters regardless of input order.
    """
    sender = _lower(from_email).strip()
    domain = sender.rsplit("@", 1)[1] if "@" in sender else ""
    domain_hit: str | None = None
    for email_filter in filters:
        if not getattr(email_filter, "is_active", True):
            continue
        pattern = _lower(getattr(email_filter, "pattern", "")).strip().lstrip("@")
        filter_type = getattr(email_filter, "filter_type", None)
        if filter_type == "exact_email" and pattern == sender:
            return email_filter.category
        if filter_type == "domain" and domain_hit is None and pattern and pattern == domain:
            domain_hit = email_filter.category
    return domain_hit
