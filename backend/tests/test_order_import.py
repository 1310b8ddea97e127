from __future__ import annotations

from datetime import timedelta

import pytest

from app.domain_errors import DomainError, DuplicateRecordError
from app.use_cases.order_import import (
    CREATED,
    DUPLICATE,
    LINKED,
    REJECTED_NOT_CUSTOM,
    UPDATED,
    WEBHOOK,
    import_order_by_id_use_case,
    import_order_use_case,
    mark_order_shipped,
)
from fakes import FIXED_NOW, InMemoryOpsRepository


def _order(*, order_id=5001, name="#6540", title="Customify Hand Fan", financial_status="paid",
           email="amy@example.org", created_at="2026-03-09T15:00:00Z", **extra):
    return {
        "id": order_id,
        "name": name,
        "financial_status": financial_status,
        "fulfillment_status": None,
        "created_at": created_at,
        "tags": "",
        "customer": {"email": email, "first_name": "Amy", "last_name": "Baker"},
        "line_items": [{"title": title, "quantity": 2}],
        **extra,
    }


def test_customify_order_creates_work_item_with_initial_event() -> None:
    repo = InMemoryOpsRepository()

    result = import_order_use_case(repo=repo, order=_order(), now=FIXED_NOW)

    assert result.action == CREATED
    item = repo.get_work_item(result.work_item_id)
    assert item.type == "customify_order"
    assert item.status == "needs_design_review"
    assert item.shopify_order_id == "5001"
    assert item.shopify_order_number == "#6540"
    assert item.title == "Customify Order #6540 - Amy Baker"
    assert item.next_follow_up_at == FIXED_NOW + timedelta(days=1)
    events = repo.events_for(item.id)
    assert [(event.from_status, event.to_status, event.changed_by) for event in events] == [
        (None, "needs_design_review", "system:shopify")
    ]


def test_manual_reimport_is_a_duplicate_and_changes_nothing() -> None:
    repo = InMemoryOpsRepository()
    first = import_order_use_case(repo=repo, order=_order(), now=FIXED_NOW)

    second = import_order_use_case(repo=repo, order=_order(), now=FIXED_NOW + timedelta(hours=1))

    assert second.action == DUPLICATE
    assert second.work_item_id == first.work_item_id
    assert len(repo.work_items) == 1
    assert len(repo.status_events) == 1


def test_webhook_redelivery_updates_payment_status_forward() -> None:
    repo = InMemoryOpsRepository()
    order = _order(title="Professional Custom Fan Design Service", financial_status="pending")
    created = import_order_use_case(repo=repo, order=order, mode=WEBHOOK, now=FIXED_NOW)
    item = repo.get_work_item(created.work_item_id)
    assert item.status == "design_fee_sent"
    assert item.design_fee_order_id == "5001"
    assert item.shopify_order_id is None

    order["financial_status"] = "paid"
    updated = import_order_use_case(repo=repo, order=order, mode=WEBHOOK, now=FIXED_NOW + timedelta(hours=2))

    assert updated.action == UPDATED
    assert item.status == "design_fee_paid"
    assert item.shopify_financial_status == "paid"
    assert repo.events_for(item.id)[-1].from_status == "design_fee_sent"


def test_webhook_update_never_moves_an_item_backwards() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="proof_sent", design_fee_order_id="5001")
    order = _order(title="Custom Fan Design Service", financial_status="paid")

    result = import_order_use_case(repo=repo, order=order, mode=WEBHOOK, now=FIXED_NOW)

    assert result.action == UPDATED
    assert item.status == "proof_sent"
    assert repo.events_for(item.id) == []


def test_unclassified_order_is_rejected() -> None:
    repo = InMemoryOpsRepository()

    result = import_order_use_case(repo=repo, order=_order(title="Rainbow Fan"), now=FIXED_NOW)

    assert result.action == REJECTED_NOT_CUSTOM
    assert repo.work_items == {}


def test_order_without_id_is_invalid() -> None:
    with pytest.raises(DomainError) as exc_info:
        import_order_use_case(repo=InMemoryOpsRepository(), order={"line_items": []}, now=FIXED_NOW)
    assert exc_info.value.code == "ORDER_ID_MISSING"


def test_design_fee_order_attaches_to_open_inquiry() -> None:
    repo = InMemoryOpsRepository()
    lead = repo.seed_work_item(status="new_inquiry", customer_email="amy@example.org")
    order = _order(title="Custom Fan Design Service", financial_status="paid")

    result = import_order_use_case(repo=repo, order=order, now=FIXED_NOW)

    assert result.action == LINKED
    assert result.work_item_id == lead.id
    assert lead.design_fee_order_id == "5001"
    assert lead.status == "design_fee_paid"
    assert len(repo.work_items) == 1


def test_bulk_order_attaches_to_project_awaiting_production() -> None:
    repo = InMemoryOpsRepository()
    project = repo.seed_work_item(
        status="invoice_sent", customer_email="amy@example.org", design_fee_order_id="4000"
    )
    order = _order(order_id=5002, name="#6600", title="Custom Bulk Order (300 units)", financial_status="partially_paid")

    result = import_order_use_case(repo=repo, order=order, now=FIXED_NOW)

    assert result.action == LINKED
    assert project.shopify_order_id == "5002"
    assert project.shopify_order_number == "#6600"
    assert project.quantity == 300
    assert project.status == "deposit_paid_ready_for_batch"


def test_bulk_order_without_project_creates_assisted_project() -> None:
    repo = InMemoryOpsRepository()
    order = _order(title="Custom Bulk Order", financial_status="authorized")

    result = import_order_use_case(repo=repo, order=order, now=FIXED_NOW)

    item = repo.get_work_item(result.work_item_id)
    assert result.action == CREATED
    assert item.type == "assisted_project"
    assert item.status == "invoice_sent"
    assert item.title.startswith("Custom Bulk Order #6540")


def test_import_auto_links_customer_emails_around_order_date() -> None:
    repo = InMemoryOpsRepository()
    near = repo.seed_communication(from_email="amy@example.org", received_at=FIXED_NOW - timedelta(days=3))
    old = repo.seed_communication(from_email="amy@example.org", received_at=FIXED_NOW - timedelta(days=90))
    other = repo.seed_communication(from_email="bo@example.org", received_at=FIXED_NOW - timedelta(days=1))

    result = import_order_use_case(repo=repo, order=_order(), now=FIXED_NOW)

    assert result.emails_linked == 1
    assert near.work_item_id == result.work_item_id
    assert near.triage_status == "attached"
    assert old.work_item_id is None
    assert other.work_item_id is None


def test_concurrent_insert_is_reported_as_duplicate() -> None:
    repo = InMemoryOpsRepository()
    winner = repo.seed_work_item(type="customify_order", status="needs_design_review")
    original_find = repo.find_work_item_by_order_id
    calls = {"n": 0}

    def _find_after_race(order_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return winner

    def _add_conflict(_item):
        raise DuplicateRecordError("work_item", "5001")

    repo.find_work_item_by_order_id = _find_after_race
    repo.add_work_item = _add_conflict

    result = import_order_use_case(repo=repo, order=_order(), now=FIXED_NOW)

    assert result.action == DUPLICATE
    assert result.work_item_id == winner.id
    assert repo.rollback_calls == 1
    assert repo.status_events == []
    repo.find_work_item_by_order_id = original_find


def test_import_by_id_uses_fetcher() -> None:
    repo = InMemoryOpsRepository()
    fetched = []

    def _fetch(order_id):
        fetched.append(order_id)
        return _order(order_id=int(order_id))

    result = import_order_by_id_use_case(repo=repo, order_id="7777", fetch_order=_fetch, now=FIXED_NOW)

    assert fetched == ["7777"]
    assert repo.get_work_item(result.work_item_id).shopify_order_id == "7777"


def test_fulfillment_marks_open_item_shipped() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(type="customify_order", status="ready_for_batch", shopify_order_id="5001")

    shipped = mark_order_shipped(repo=repo, order_id="5001", fulfillment_status="fulfilled", now=FIXED_NOW)

    assert shipped is item
    assert item.status == "shipped"
    assert item.shopify_fulfillment_status == "fulfilled"
    assert repo.events_for(item.id)[-1].changed_by == "system:shopify"


def test_fulfillment_for_unknown_or_closed_order_does_nothing() -> None:
    repo = InMemoryOpsRepository()
    repo.seed_work_item(type="customify_order", status="closed", shopify_order_id="5001", closed_at=FIXED_NOW)

    assert mark_order_shipped(repo=repo, order_id="5001", fulfillment_status=None, now=FIXED_NOW) is None
    assert mark_order_shipped(repo=repo, order_id="9999", fulfillment_status=None, now=FIXED_NOW) is None


def test_fulfillment_of_design_fee_order_does_not_ship_project() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(status="design_fee_paid", design_fee_order_id="7001")

    assert mark_order_shipped(repo=repo, order_id="7001", fulfillment_status="fulfilled", now=FIXED_NOW) is None
    assert item.status == "design_fee_paid"
    assert item.shopify_fulfillment_status is None
    assert repo.events_for(item.id) == []


def test_webhook_insert_race_applies_payment_to_the_winner() -> None:
    repo = InMemoryOpsRepository()
    order = _order(title="Professional Custom Fan Design Service", financial_status="paid")
    real_add = repo.add_work_item
    state = {"winner": None}

    def _add_after_concurrent_create(item):
        if state["winner"] is None:
            state["winner"] = repo.seed_work_item(status="design_fee_sent", design_fee_order_id="5001")
        return real_add(item)

    repo.add_work_item = _add_after_concurrent_create

    result = import_order_use_case(repo=repo, order=order, mode=WEBHOOK, now=FIXED_NOW)

    winner = state["winner"]
    assert result.action == UPDATED
    assert result.work_item_id == winner.id
    assert winner.status == "design_fee_paid"
    assert winner.shopify_financial_status == "paid"
    assert repo.events_for(winner.id)[-1].from_status == "design_fee_sent"
    assert len(repo.work_items) == 1


def test_webhook_update_for_closed_item_changes_nothing() -> None:
    repo = InMemoryOpsRepository()
    item = repo.seed_work_item(
        status="closed_lost",
        closed_at=FIXED_NOW,
        design_fee_order_id="5001",
        shopify_financial_status="pending",
    )
    order = _order(title="Custom Fan Design Service", financial_status="paid")

    result = import_order_use_case(repo=repo, order=order, mode=WEBHOOK, now=FIXED_NOW + timedelta(hours=1))

    assert result.action == DUPLICATE
    assert result.work_item_id == item.id
    assert item.shopify_financial_status == "pending"
    assert item.status == "closed_lost"
    assert repo.commit_calls == 0
