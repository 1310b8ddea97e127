"""Next follow-up computation from a work item's status and history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from .work_item_status import is_terminal_status

FUTURE_EVENT_MONITORING = "future_event_monitoring"


def _default_cadence() -> dict[str, int]:
    return {
        "needs_design_review": 1,
        "needs_customer_fix": 2,
        "new_inquiry": 1,
        "info_sent": 3,
        FUTURE_EVENT_MONITORING: 30,
        "design_fee_sent": 3,
        "design_fee_paid": 2,
        "in_design": 2,
        "proof_sent": 2,
        "awaiting_approval": 3,
        "invoice_sent": 3,
        "deposit_paid_ready_for_batch": 7,
        "on_payment_terms_ready_for_batch": 7,
    }


@dataclass(frozen=True)
class FollowUpPolicy:
    """Cadence in days per status. Statuses not listed get no follow-up."""

    cadence_days: dict[str, int] = field(default_factory=_default_cadence)
    rush_window_days: int = 30
    rush_max_days: int = 1
    event_lead_days: int = 90


DEFAULT_POLICY = FollowUpPolicy()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _anchor(item: Any) -> datetime | None:
    candidates = [
        _as_utc(value)
        for value in (item.last_contact_at, item.status_changed_at, item.created_at)
        if value is not None
    ]
    return max(candidates) if candidates else None


def _is_rush(event_date: date | None, today: date, policy: FollowUpPolicy) -> bool:
    if event_date is None:
        return False
    days_out = (event_date - today).days
    return 0 <= days_out <= policy.rush_window_days


def compute_next_follow_up(
    item: Any,
    *,
    now: datetime,
    policy: FollowUpPolicy = DEFAULT_POLICY,
) -> datetime | None:
    """Return the next follow-up due time, or None when nothing is due.

    Depends only on the item's fields, ``now`` and the policy, so repeated
    calls with the same inputs give the same answer. An active snooze is a
    lower bound on the cadence date.
    """
    if item.is_waiting:
        return None
    if is_terminal_status(item.status):
        return None
    cadence = policy.cadence_days.get(item.status)
    if cadence is None:
        return None

    anchor = _anchor(item) or _as_utc(now)
    event_date = getattr(item, "event_date", None)
    if item.status != FUTURE_EVENT_MONITORING and _is_rush(event_date, _as_utc(now).date(), policy):
        cadence = min(cadence, policy.rush_max_days)
    due = anchor + timedelta(days=cadence)

    if item.status == FUTURE_EVENT_MONITORING and event_date is not None:
        lead_due = datetime.combine(
            event_date - timedelta(days=policy.event_lead_days),
            time(9, 0),
            tzinfo=timezone.utc,
        )
        if lead_due > due:
            due = lead_due

    snoozed_until = getattr(item, "snoozed_until", None)
    if snoozed_until is not None and _as_utc(snoozed_until) > due:
        due = _as_utc(snoozed_until)

    return due
