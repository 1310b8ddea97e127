"""Work item status taxonomy, transition rules and payment status mapping."""

from __future__ import annotations

from dataclasses import dataclass

from ..domain_errors import InvalidTransitionError, UnmappedOrderStatusError

CUSTOMIFY_ORDER = "customify_order"
ASSISTED_PROJECT = "assisted_project"
WORK_ITEM_TYPES: tuple[str, ...] = (CUSTOMIFY_ORDER, ASSISTED_PROJECT)

CUSTOM_DESIGN_SERVICE = "custom_design_service"
CUSTOM_BULK_ORDER = "custom_bulk_order"
ORDER_TYPES: tuple[str, ...] = (CUSTOMIFY_ORDER, CUSTOM_DESIGN_SERVICE, CUSTOM_BULK_ORDER)

# Workflow rank per status. Parallel branches share a rank.
_CUSTOMIFY_WORKFLOW: dict[str, int] = {
    "needs_design_review": 1,
    "needs_customer_fix": 2,
    "approved": 2,
    "ready_for_batch": 3,
    "batched": 4,
    "shipped": 5,
    "closed": 6,
}

_ASSISTED_WORKFLOW: dict[str, int] = {
    "new_inquiry": 1,
    "future_event_monitoring": 2,
    "info_sent": 2,
    "design_fee_sent": 3,
    "design_fee_paid": 4,
    "in_design": 5,
    "proof_sent": 6,
    "awaiting_approval": 7,
    "invoice_sent": 8,
    "deposit_paid_ready_for_batch": 9,
    "on_payment_terms_ready_for_batch": 9,
    "paid_ready_for_batch": 9,
    "batched": 10,
    "shipped": 11,
    "closed_won": 12,
    "closed_lost": 12,
    "closed_event_cancelled": 12,
}

_READY_FOR_BATCH = {
    "deposit_paid_ready_for_batch",
    "on_payment_terms_ready_for_batch",
    "paid_ready_for_batch",
}
_ASSISTED_CLOSING = {"closed_won", "closed_lost", "closed_event_cancelled"}

_CUSTOMIFY_TRANSITIONS: dict[str, set[str]] = {
    "needs_design_review": {"approved", "needs_customer_fix"},
    "needs_customer_fix": {"needs_design_review"},
    "approved": {"ready_for_batch"},
    "ready_for_batch": {"batched"},
    "batched": {"shipped"},
    "shipped": {"closed"},
    "closed": set(),
}

_ASSISTED_TRANSITIONS: dict[str, set[str]] = {
    "new_inquiry": {"info_sent", "future_event_monitoring"},
    "future_event_monitoring": {"info_sent"},
    "info_sent": {"design_fee_sent"},
    "design_fee_sent": {"design_fee_paid"},
    "design_fee_paid": {"in_design"},
    "in_design": {"proof_sent"},
    "proof_sent": {"awaiting_approval"},
    "awaiting_approval": {"invoice_sent", "in_design"},
    "invoice_sent": set(_READY_FOR_BATCH),
    "deposit_paid_ready_for_batch": {"batched", "paid_ready_for_batch"},
    "on_payment_terms_ready_for_batch": {"batched", "paid_ready_for_batch"},
    "paid_ready_for_batch": {"batched"},
    "batched": {"shipped"},
    "shipped": set(_ASSISTED_CLOSING),
    "closed_won": set(),
    "closed_lost": set(),
    "closed_event_cancelled": set(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset({"closed", *_ASSISTED_CLOSING})
SYSTEM_ONLY_STATUSES: frozenset[str] = frozenset({"batched", "shipped"})
ALL_STATUSES: frozenset[str] = frozenset(_CUSTOMIFY_WORKFLOW) | frozenset(_ASSISTED_WORKFLOW)

STATUS_LABELS: dict[str, str] = {
    "needs_design_review": "Needs Design Review",
    "needs_customer_fix": "Needs Customer Fix",
    "approved": "Approved",
    "ready_for_batch": "Ready for Batch",
    "batched": "Batched",
    "shipped": "Shipped",
    "closed": "Closed",
    "new_inquiry": "New Inquiry",
    "info_sent": "Info Sent",
    "future_event_monitoring": "Future Event Monitoring",
    "design_fee_sent": "Design Fee Sent",
    "design_fee_paid": "Design Fee Paid",
    "in_design": "In Design",
    "proof_sent": "Proof Sent",
    "awaiting_approval": "Awaiting Approval",
    "invoice_sent": "Invoice Sent",
    "deposit_paid_ready_for_batch": "Deposit Paid - Ready for Batch",
    "on_payment_terms_ready_for_batch": "On Payment Terms - Ready for Batch",
    "paid_ready_for_batch": "Paid - Ready for Batch",
    "closed_won": "Closed (Won)",
    "closed_lost": "Closed (Lost)",
    "closed_event_cancelled": "Closed (Event Cancelled)",
}

_STATUS_GROUPS: dict[str, list[tuple[str, list[str]]]] = {
    CUSTOMIFY_ORDER: [
        ("Normal Workflow", ["needs_design_review", "needs_customer_fix", "approved", "ready_for_batch"]),
        ("System Managed", ["batched", "shipped"]),
        ("Closing", ["closed"]),
    ],
    ASSISTED_PROJECT: [
        ("Inquiry & Quoting", [
            "new_inquiry", "info_sent", "future_event_monitoring", "design_fee_sent", "design_fee_paid",
        ]),
        ("Design & Approval", ["in_design", "proof_sent", "awaiting_approval"]),
        ("Payment & Production", [
            "invoice_sent",
            "deposit_paid_ready_for_batch",
            "on_payment_terms_ready_for_batch",
            "paid_ready_for_batch",
        ]),
        ("System Managed", ["batched", "shipped"]),
        ("Closing", ["closed_won", "closed_lost", "closed_event_cancelled"]),
    ],
}


@dataclass(frozen=True)
class TransitionAnalysis:
    is_backwards: bool
    is_skipping: bool
    is_closing: bool
    on_graph: bool
    requires_note: bool
    warning: str | None = None


def _workflow_for(work_item_type: str) -> dict[str, int]:
    if work_item_type == CUSTOMIFY_ORDER:
        return _CUSTOMIFY_WORKFLOW
    if work_item_type == ASSISTED_PROJECT:
        return _ASSISTED_WORKFLOW
    raise InvalidTransitionError(
        code="UNKNOWN_WORK_ITEM_TYPE",
        http_status=400,
        message=f"Unknown work item type: {work_item_type}",
    )


def _transitions_for(work_item_type: str) -> dict[str, set[str]]:
    if work_item_type == CUSTOMIFY_ORDER:
        return _CUSTOMIFY_TRANSITIONS
    return _ASSISTED_TRANSITIONS


def is_terminal_status(status: str | None) -> bool:
    return status in TERMINAL_STATUSES


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, status)


def status_groups(work_item_type: str, current_status: str | None = None) -> list[dict[str, object]]:
    """Grouped status options for the change-status dialog.

    With ``current_status`` each option also says whether picking it needs a note.
    """
    _workflow_for(work_item_type)
    groups: list[dict[str, object]] = []
    for label, statuses in _STATUS_GROUPS[work_item_type]:
        options: list[dict[str, object]] = []
        for status in statuses:
            option: dict[str, object] = {
                "value": status,
                "label": status_label(status),
                "disabled": status in SYSTEM_ONLY_STATUSES,
            }
            if current_status is not None:
                option["current"] = status == current_status
                option["requires_note"] = analyze_transition(
                    work_item_type=work_item_type,
                    current_status=current_status,
                    next_status=status,
                ).requires_note
            options.append(option)
        groups.append({"label": label, "statuses": options})
    return groups


def is_allowed_edge(*, work_item_type: str, current_status: str, next_status: str) -> bool:
    return next_status in _transitions_for(work_item_type).get(current_status, set())


def analyze_transition(*, work_item_type: str, current_status: str, next_status: str) -> TransitionAnalysis:
    """Classify a move relative to the workflow order of the item's taxonomy."""
    workflow = _workflow_for(work_item_type)
    if next_status not in workflow:
        raise InvalidTransitionError(
            code="INVALID_STATUS_FOR_TYPE",
            http_status=400,
            message=f"Status {next_status!r} is not valid for {work_item_type}",
        )

    on_graph = is_allowed_edge(
        work_item_type=work_item_type,
        current_status=current_status,
        next_status=next_status,
    )
    from_rank = workflow.get(current_status, 0)
    to_rank = workflow[next_status]
    is_closing = next_status in TERMINAL_STATUSES
    is_backwards = not on_graph and to_rank < from_rank
    is_skipping = not on_graph and to_rank > from_rank + 1
    # Off-graph sideways moves (e.g. approved -> needs_customer_fix) also need a reason.
    requires_note = is_closing or (not on_graph and next_status != current_status)

    warning = None
    if is_backwards:
        warning = "Moving backwards in the workflow. Please explain why."
    elif is_skipping:
        warning = "Skipping workflow stages. This is unusual - please add a note explaining why."
    elif is_closing:
        warning = "This will close the work item. Please provide a closure reason."
    elif requires_note:
        warning = "This move is outside the normal workflow. Please add a note."

    return TransitionAnalysis(
        is_backwards=is_backwards,
        is_skipping=is_skipping,
        is_closing=is_closing,
        on_graph=on_graph,
        requires_note=requires_note,
        warning=warning,
    )


def validate_status_transition(
    *,
    work_item_type: str,
    current_status: str,
    next_status: str,
    note: str | None,
    is_system: bool,
) -> TransitionAnalysis:
    """Raise InvalidTransitionError when a status change is not permitted."""
    analysis = analyze_transition(
        work_item_type=work_item_type,
        current_status=current_status,
        next_status=next_status,
    )
    if is_system or next_status == current_status:
        return analysis

    if next_status in SYSTEM_ONLY_STATUSES:
        raise InvalidTransitionError(
            code="STATUS_SYSTEM_ONLY",
            http_status=400,
            message=f'"{status_label(next_status)}" can only be set by the system',
        )
    if analysis.requires_note and not (note and note.strip()):
        raise InvalidTransitionError(
            code="NOTE_REQUIRED",
            http_status=400,
            message=analysis.warning or "A note is required for this status change",
        )
    return analysis


def normalize_financial_status(financial_status: str | None) -> str:
    if not financial_status:
        return ""
    return financial_status.strip().lower()


def work_item_type_for_order(order_type: str | None) -> str:
    if order_type == CUSTOMIFY_ORDER:
        return CUSTOMIFY_ORDER
    if order_type in (CUSTOM_DESIGN_SERVICE, CUSTOM_BULK_ORDER):
        return ASSISTED_PROJECT
    raise UnmappedOrderStatusError(order_type, None)


def status_for_order(order_type: str | None, financial_status: str | None) -> str:
    """Map (order type, Shopify financial status) to exactly one work item status.

    Every financial status falls into one of the buckets ``paid``,
    ``partially_paid`` or "anything else", so the mapping is total over the
    known order types. Unknown order types raise instead of guessing.
    """
    paid_state = normalize_financial_status(financial_status)

    if order_type == CUSTOMIFY_ORDER:
        return "needs_design_review"

    if order_type == CUSTOM_DESIGN_SERVICE:
        if paid_state == "paid":
            return "design_fee_paid"
        return "design_fee_sent"

    if order_type == CUSTOM_BULK_ORDER:
        if paid_state == "paid":
            return "paid_ready_for_batch"
        if paid_state == "partially_paid":
            return "deposit_paid_ready_for_batch"
        return "invoice_sent"

    raise UnmappedOrderStatusError(order_type, financial_status)


def is_forward_move(*, work_item_type: str, current_status: str, next_status: str) -> bool:
    """True when next_status sits strictly later in the workflow than current_status."""
    workflow = _workflow_for(work_item_type)
    if current_status not in workflow or next_status not in workflow:
        return False
    return workflow[next_status] > workflow[current_status]
