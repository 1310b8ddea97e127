from app.services.order_numbers import (
    HIGH,
    LOW,
    MEDIUM,
    extract_order_numbers,
    linkable_order_numbers,
    strip_reply_prefixes,
)


def test_order_hash_in_subject_is_high_confidence() -> None:
    matches = extract_order_numbers("Re: Order #6540 question", None)
    assert [(m.order_number, m.source, m.confidence) for m in matches] == [("6540", "subject", HIGH)]


def test_bare_hash_confidence_depends_on_location() -> None:
    matches = extract_order_numbers("About #1234", "see also #5678 below")
    by_number = {m.order_number: m for m in matches}
    assert by_number["1234"].confidence == MEDIUM
    assert by_number["5678"].confidence == LOW


def test_reference_pattern_is_recognized() -> None:
    matches = extract_order_numbers("Ref: 4321", None)
    assert matches[0].order_number == "4321"
    assert matches[0].pattern == "Ref: XXXX"


def test_same_number_in_subject_and_body_is_reported_per_source() -> None:
    matches = extract_order_numbers("Order 7001", "Your Order #7001 shipped")
    assert {(m.order_number, m.source) for m in matches} == {("7001", "subject"), ("7001", "body")}


def test_linkable_numbers_drop_low_confidence_and_sort_by_confidence() -> None:
    matches = extract_order_numbers("Question about #1111", "Ref: 2222 and Order #3333")
    linkable = linkable_order_numbers(matches)
    assert [m.order_number for m in linkable] == ["3333", "1111"]


def test_short_and_long_digit_runs_are_ignored() -> None:
    assert extract_order_numbers("#12 and #1234567", None) == []


def test_strip_reply_prefixes_handles_stacks() -> None:
    assert strip_reply_prefixes("RE: Fwd: fw: Custom fans for Pride") == "Custom fans for Pride"
    assert strip_reply_prefixes(None) == ""
