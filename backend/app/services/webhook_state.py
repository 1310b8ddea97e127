"""Webhook idempotency log state machine.

The transition table is the single source for both the SQL conditional
updates and the in-process checks.
"""

from __future__ import annotations

from datetime import datetime

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
SKIPPED = "skipped"

WEBHOOK_STATUSES: frozenset[str] = frozenset({PENDING, PROCESSING, COMPLETED, FAILED, SKIPPED})

_ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {PROCESSING},
    FAILED: {PROCESSING},
    PROCESSING: {COMPLETED, FAILED, SKIPPED},
    SKIPPED: set(),
    COMPLETED: set(),
}


def sources_for(next_status: str) -> frozenset[str]:
    """Statuses a row may be in for an UPDATE to ``next_status`` to apply."""
    return frozenset(status for status, targets in _ALLOWED_TRANSITIONS.items() if next_status in targets)


CLAIMABLE_STATUSES: frozenset[str] = sources_for(PROCESSING)


def validate_webhook_transition(*, current_status: str, next_status: str) -> str:
    allowed = _ALLOWED_TRANSITIONS.get(current_status, set())
    if next_status not in allowed:
        raise ValueError(f"Invalid webhook status transition: {current_status} -> {next_status}")
    return next_status


def is_stale_processing(
    *,
    status: str,
    processing_started_at: datetime | None,
    stale_before: datetime,
) -> bool:
    """A processing lease nobody finished before ``stale_before`` can be re-claimed."""
    if status != PROCESSING:
        return False
    if processing_started_at is None:
        return True
    return processing_started_at <= stale_before


def can_claim(
    *,
    status: str,
    processing_started_at: datetime | None,
    stale_before: datetime,
) -> bool:
    if status in CLAIMABLE_STATUSES:
        return True
    return is_stale_processing(
        status=status,
        processing_started_at=processing_started_at,
        stale_before=stale_before,
    )


def can_reprocess(*, status: str, retry_count: int, max_retries: int) -> tuple[bool, str | None]:
    """Manual replay guard used by the reprocess endpoint and the retry task."""
    if status == COMPLETED:
        return False, "Webhook already processed successfully"
    if status == SKIPPED:
        return False, "Webhook was skipped; nothing to reprocess"
    if retry_count >= max_retries:
        return False, f"Maximum retry limit ({max_retries}) exceeded"
    return True, None
