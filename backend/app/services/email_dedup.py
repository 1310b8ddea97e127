"""Duplicate detection rules for imported mailbox messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Sequence

PROVIDER_MESSAGE_ID = "provider_message_id"
INTERNET_MESSAGE_ID = "internet_message_id"
FINGERPRINT = "fingerprint"
UNIQUE_CONSTRAINT = "unique_constraint"
DEDUP_STRATEGIES: tuple[str, ...] = (PROVIDER_MESSAGE_ID, INTERNET_MESSAGE_ID, FINGERPRINT)


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    strategy: str | None = None
    existing_communication_id: Any = None


NOT_DUPLICATE = DuplicateCheck(is_duplicate=False)


@dataclass
class DuplicateGroup:
    strategy: str
    key: str
    keep_id: Any
    duplicate_ids: list[Any] = field(default_factory=list)


def fingerprint_window(received_at: datetime, window_seconds: int) -> tuple[datetime, datetime]:
    delta = timedelta(seconds=window_seconds)
    return received_at - delta, received_at + delta


def _sort_key(record: Any) -> tuple[datetime, str]:
    created = record.created_at or datetime.max.replace(tzinfo=None)
    if created.tzinfo is not None:
        created = created.replace(tzinfo=None) - (created.utcoffset() or timedelta(0))
    return created, str(record.id)


def _group(strategy: str, key: str, members: Sequence[Any]) -> DuplicateGroup:
    ordered = sorted(members, key=_sort_key)
    return DuplicateGroup(
        strategy=strategy,
        key=key,
        keep_id=ordered[0].id,
        duplicate_ids=[record.id for record in ordered[1:]],
    )


def _by_attribute(records: Iterable[Any], attribute: str) -> dict[str, list[Any]]:
    buckets: dict[str, list[Any]] = {}
    for record in records:
        value = getattr(record, attribute, None)
        if value:
            buckets.setdefault(value, []).append(record)
    return buckets


def _fingerprint_clusters(records: Iterable[Any], window_seconds: int) -> list[tuple[str, list[Any]]]:
    buckets: dict[tuple[str, str], list[Any]] = {}
    for record in records:
        if not record.from_email or record.received_at is None:
            continue
        buckets.setdefault((record.from_email.lower(), record.subject or ""), []).append(record)

    window = timedelta(seconds=window_seconds)
    clusters: list[tuple[str, list[Any]]] = []
    for (sender, subject), members in buckets.items():
        members.sort(key=lambda record: record.received_at)
        current: list[Any] = []
        for record in members:
            if current and record.received_at - current[0].received_at > window:
                clusters.append((f"{sender}|{subject}", current))
                current = []
            current.append(record)
        clusters.append((f"{sender}|{subject}", current))
    return clusters


def find_duplicate_groups(records: Sequence[Any], *, window_seconds: int = 5) -> list[DuplicateGroup]:
    """Group historical duplicates; each group keeps its earliest-created record.

    Strategies run in order and a record removed by one strategy is not
    considered by the next.
    """
    groups: list[DuplicateGroup] = []
    removed: set[Any] = set()

    def remaining() -> list[Any]:
        return [record for record in records if record.id not in removed]

    for strategy in (PROVIDER_MESSAGE_ID, INTERNET_MESSAGE_ID):
        for key, members in _by_attribute(remaining(), strategy).items():
            if len(members) < 2:
                continue
            group = _group(strategy, key, members)
            removed.update(group.duplicate_ids)
            groups.append(group)

    for key, members in _fingerprint_clusters(remaining(), window_seconds):
        if len(members) < 2:
            continue
        group = _group(FINGERPRINT, key, members)
        removed.update(group.duplicate_ids)
        groups.append(group)

    return groups
