import pytest

from app.domain_errors import DomainError, UnmappedOrderStatusError
from app.services.work_item_status import (
    ASSISTED_PROJECT,
    CUSTOM_BULK_ORDER,
    CUSTOM_DESIGN_SERVICE,
    CUSTOMIFY_ORDER,
    analyze_transition,
    is_forward_move,
    is_terminal_status,
    status_for_order,
    status_groups,
    validate_status_transition,
    work_item_type_for_order,
)

FINANCIAL_STATUSES = [
    None,
    "",
    "pending",
    "authorized",
    "partially_paid",
    "paid",
    "partially_refunded",
    "refunded",
    "voided",
    "PAID",
    "something_new",
]


@pytest.mark.parametrize("order_type", [CUSTOMIFY_ORDER, CUSTOM_DESIGN_SERVICE, CUSTOM_BULK_ORDER])
@pytest.mark.parametrize("financial_status", FINANCIAL_STATUSES)
def test_status_mapping_is_total_and_valid_for_the_item_type(order_type, financial_status) -> None:
    status = status_for_order(order_type, financial_status)
    groups = status_groups(work_item_type_for_order(order_type))
    options = [option["value"] for group in groups for option in group["statuses"]]
    assert status in options


def test_design_fee_status_follows_payment() -> None:
    assert status_for_order(CUSTOM_DESIGN_SERVICE, "paid") == "design_fee_paid"
    assert status_for_order(CUSTOM_DESIGN_SERVICE, "pending") == "design_fee_sent"


def test_bulk_order_status_follows_payment() -> None:
    assert status_for_order(CUSTOM_BULK_ORDER, "paid") == "paid_ready_for_batch"
    assert status_for_order(CUSTOM_BULK_ORDER, " Partially_Paid ") == "deposit_paid_ready_for_batch"
    assert status_for_order(CUSTOM_BULK_ORDER, "authorized") == "invoice_sent"


def test_customify_orders_always_start_in_design_review() -> None:
    assert status_for_order(CUSTOMIFY_ORDER, "refunded") == "needs_design_review"


def test_unknown_order_type_raises_instead_of_guessing() -> None:
    with pytest.raises(UnmappedOrderStatusError) as exc_info:
        status_for_order("gift_card", "paid")
    assert exc_info.value.code == "ORDER_STATUS_UNMAPPED"
    assert exc_info.value.http_status == 422


def test_forward_edge_needs_no_note() -> None:
    analysis = validate_status_transition(
        work_item_type=ASSISTED_PROJECT,
        current_status="new_inquiry",
        next_status="info_sent",
        note=None,
        is_system=False,
    )
    assert analysis.on_graph is True
    assert analysis.requires_note is False
    assert analysis.warning is None


def test_backwards_move_requires_note() -> None:
    with pytest.raises(DomainError) as exc_info:
        validate_status_transition(
            work_item_type=ASSISTED_PROJECT,
            current_status="proof_sent",
            next_status="in_design",
            note="  ",
            is_system=False,
        )
    assert exc_info.value.code == "NOTE_REQUIRED"


def test_backwards_move_with_note_is_flagged() -> None:
    analysis = validate_status_transition(
        work_item_type=ASSISTED_PROJECT,
        current_status="proof_sent",
        next_status="in_design",
        note="Customer wants a new color",
        is_system=False,
    )
    assert analysis.is_backwards is True
    assert "backwards" in analysis.warning


def test_skipping_stages_is_detected() -> None:
    analysis = analyze_transition(
        work_item_type=ASSISTED_PROJECT,
        current_status="new_inquiry",
        next_status="proof_sent",
    )
    assert analysis.is_skipping is True
    assert analysis.requires_note is True


def test_closing_always_requires_note() -> None:
    with pytest.raises(DomainError) as exc_info:
        validate_status_transition(
            work_item_type=ASSISTED_PROJECT,
            current_status="new_inquiry",
            next_status="closed_lost",
            note=None,
            is_system=False,
        )
    assert exc_info.value.code == "NOTE_REQUIRED"


def test_humans_cannot_set_system_only_statuses() -> None:
    with pytest.raises(DomainError) as exc_info:
        validate_status_transition(
            work_item_type=CUSTOMIFY_ORDER,
            current_status="ready_for_batch",
            next_status="batched",
            note="manual",
            is_system=False,
        )
    assert exc_info.value.code == "STATUS_SYSTEM_ONLY"


def test_system_may_set_shipped_and_skip_note() -> None:
    analysis = validate_status_transition(
        work_item_type=CUSTOMIFY_ORDER,
        current_status="approved",
        next_status="shipped",
        note=None,
        is_system=True,
    )
    assert analysis.is_skipping is True


def test_status_from_other_taxonomy_is_rejected() -> None:
    with pytest.raises(DomainError) as exc_info:
        analyze_transition(
            work_item_type=CUSTOMIFY_ORDER,
            current_status="approved",
            next_status="invoice_sent",
        )
    assert exc_info.value.code == "INVALID_STATUS_FOR_TYPE"


def test_deposit_can_settle_into_paid() -> None:
    analysis = analyze_transition(
        work_item_type=ASSISTED_PROJECT,
        current_status="deposit_paid_ready_for_batch",
        next_status="paid_ready_for_batch",
    )
    assert analysis.on_graph is True


def test_forward_move_uses_workflow_rank() -> None:
    assert is_forward_move(
        work_item_type=ASSISTED_PROJECT, current_status="design_fee_sent", next_status="design_fee_paid"
    )
    assert not is_forward_move(
        work_item_type=ASSISTED_PROJECT, current_status="in_design", next_status="design_fee_paid"
    )


def test_terminal_statuses() -> None:
    assert is_terminal_status("closed")
    assert is_terminal_status("closed_event_cancelled")
    assert not is_terminal_status("shipped")


def test_status_groups_disable_system_statuses() -> None:
    groups = status_groups(CUSTOMIFY_ORDER)
    options = {option["value"]: option for group in groups for option in group["statuses"]}
    assert options["batched"]["disabled"] is True
    assert options["approved"]["disabled"] is False


def test_status_groups_for_current_status_flag_moves_needing_a_note() -> None:
    groups = status_groups(CUSTOMIFY_ORDER, current_status="needs_design_review")
    options = {option["value"]: option for group in groups for option in group["statuses"]}
    assert options["needs_design_review"]["current"] is True
    assert options["needs_design_review"]["requires_note"] is False
    assert options["closed"]["requires_note"] is True
    assert options["approved"]["current"] is False
