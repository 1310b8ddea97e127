"""Order number extraction from email subjects and bodies."""

from __future__ import annotations

import re
from dataclasses import dataclass

HIGH = "high"
MEDIUM = "medium"
LOW = "low"
CONFIDENCE_RANK: dict[str, int] = {HIGH: 0, MEDIUM: 1, LOW: 2}

_ORDER_HASH_RE = re.compile(r"\bOrder\s*#?\s*(\d{3,6})\b", re.IGNORECASE)
_SHOPIFY_ORDER_RE = re.compile(r"\bOrder\s*#?\s*([A-Z]{2}-\d{3,6}-[A-Z]{3})\b", re.IGNORECASE)
_HASH_RE = re.compile(r"(?:^|\s)#(\d{3,6})\b")
_REF_RE = re.compile(r"\b(?:Ref|Reference):\s*(\d{3,6})\b", re.IGNORECASE)

# (pattern, label, confidence in subject, confidence in body)
_PATTERNS: tuple[tuple[re.Pattern[str], str, str, str], ...] = (
    (_ORDER_HASH_RE, "Order #XXXX", HIGH, HIGH),
    (_HASH_RE, "#XXXX", MEDIUM, LOW),
    (_REF_RE, "Ref: XXXX", MEDIUM, LOW),
    (_SHOPIFY_ORDER_RE, "Order #SO-XXXX-ABC", HIGH, HIGH),
)

_REPLY_PREFIX_RE = re.compile(r"^\s*(?:re|fwd?|fw)\s*:\s*", re.IGNORECASE)


@dataclass(frozen=True)
class OrderNumberMatch:
    order_number: str
    source: str
    confidence: str
    pattern: str


def extract_order_numbers(subject: str | None, body: str | None) -> list[OrderNumberMatch]:
    """Find candidate order numbers, subject before body, one entry per (number, source)."""
    matches: list[OrderNumberMatch] = []
    seen: set[tuple[str, str]] = set()

    for pattern, label, subject_confidence, body_confidence in _PATTERNS:
        for source, text, confidence in (
            ("subject", subject or "", subject_confidence),
            ("body", body or "", body_confidence),
        ):
            for found in pattern.finditer(text):
                number = found.group(1)
                key = (number, source)
                if key in seen:
                    continue
                seen.add(key)
                matches.append(
                    OrderNumberMatch(
                        order_number=number,
                        source=source,
                        confidence=confidence,
                        pattern=label,
                    )
                )
    return matches


def linkable_order_numbers(matches: list[OrderNumberMatch]) -> list[OrderNumberMatch]:
    """High then medium confidence matches, stable within a tier.

    Low-confidence body hits (bare ``#1234`` or ``Ref: 1234``) are too noisy
    to auto-link on.
    """
    usable = [match for match in matches if match.confidence in (HIGH, MEDIUM)]
    return sorted(usable, key=lambda match: CONFIDENCE_RANK[match.confidence])


def strip_reply_prefixes(subject: str | None) -> str:
    """Remove any stack of Re:/Fwd:/FW: prefixes."""
    text = (subject or "").strip()
    while True:
        stripped = _REPLY_PREFIX_RE.sub("", text, count=1)
        if stripped == text:
            return text.strip()
        text = stripped
