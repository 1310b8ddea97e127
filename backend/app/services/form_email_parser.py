"""Lead extraction from third-party form notification emails.

Form builders (Powerful Form, Google Forms, Formstack, Typeform) relay
website inquiries from a no-reply address, so the customer's details only
exist inside the message body. Two layouts are understood::

    Custom Fan Inquiry Submission * Your Name: Amy Baker * Email: amy@x.com

and one ``Key: value`` pair per line. When neither yields an email address the
first address in the body that does not belong to the provider is used.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .html_text import html_to_plain_text

FORM_PROVIDER_SENDERS: tuple[str, ...] = (
    "no-reply@powerfulform.com",
    "noreply@powerfulform.com",
    "forms-noreply@google.com",
    "noreply@formstack.com",
    "notifications@typeform.com",
)

_ASTERISK_FIELD_RE = re.compile(r"\*\s*([^:*\n]+):\s*([^*]+)")
_LINE_FIELD_RE = re.compile(r"^([^:]+):\s*(.+)$")
_EMAIL_IN_TEXT_RE = re.compile(r"[\w.+-]+@[\w.-]+\.\w{2,}")
_VALID_EMAIL_RE = re.compile(r"^[\w.+-]+@[\w.-]+\.\w{2,}$")
_IGNORED_FALLBACK_MARKERS: tuple[str, ...] = ("shopify.com", "noreply", "no-reply")


@dataclass
class ParsedFormData:
    customer_name: str | None = None
    customer_email: str | None = None
    organization: str | None = None
    project_details: str | None = None
    event_date: str | None = None
    additional_fields: dict[str, str] = field(default_factory=dict)


def is_form_submission_email(from_email: str | None) -> bool:
    sender = (from_email or "").strip().lower()
    return any(provider in sender for provider in FORM_PROVIDER_SENDERS)


def _email_from_value(value: str) -> str:
    found = _EMAIL_IN_TEXT_RE.search(value)
    return found.group(0) if found else value


def _field_for_key(key: str) -> str | None:
    if "name" in key and "organization" not in key:
        return "customer_name"
    if "email" in key:
        return "customer_email"
    if "organization" in key or "company" in key:
        return "organization"
    if "project" in key or "details" in key or "description" in key:
        return "project_details"
    if "date" in key:
        return "event_date"
    return None


def _assign(result: ParsedFormData, attr: str, value: str, *, overwrite: bool) -> None:
    if not overwrite and getattr(result, attr):
        return
    if attr == "customer_email":
        value = _email_from_value(value)
    setattr(result, attr, value)


def _parse_asterisk_fields(content: str, result: ParsedFormData) -> None:
    for match in _ASTERISK_FIELD_RE.finditer(content):
        raw_key = match.group(1).strip()
        value = " ".join(match.group(2).split())
        if not value:
            continue
        attr = _field_for_key(raw_key.lower())
        if attr is None:
            result.additional_fields[raw_key] = value
            continue
        _assign(result, attr, value, overwrite=True)


def _parse_line_fields(content: str, result: ParsedFormData) -> None:
    for line in content.split("\n"):
        match = _LINE_FIELD_RE.match(line.strip())
        if not match:
            continue
        value = match.group(2).strip()
        if not value:
            continue
        attr = _field_for_key(match.group(1).strip().lower())
        if attr is not None:
            _assign(result, attr, value, overwrite=False)


def _fallback_email(content: str, provider_domain: str | None) -> str | None:
    for candidate in _EMAIL_IN_TEXT_RE.findall(content):
        lowered = candidate.lower()
        if provider_domain and lowered.endswith("@" + provider_domain):
            continue
        if any(marker in lowered for marker in _IGNORED_FALLBACK_MARKERS):
            continue
        return candidate
    return None


def parse_form_email(
    *,
    from_email: str | None,
    body_text: str | None,
    body_html: str | None = None,
) -> ParsedFormData | None:
    """Extract lead fields; None when no customer email could be found."""
    content = body_text or html_to_plain_text(body_html)
    if not content:
        return None

    result = ParsedFormData()
    _parse_asterisk_fields(content, result)
    if not result.customer_email:
        _parse_line_fields(content, result)
    if not result.customer_email:
        provider_domain = None
        if from_email and "@" in from_email:
            provider_domain = from_email.rsplit("@", 1)[1].strip().lower()
        result.customer_email = _fallback_email(content, provider_domain)

    if not result.customer_email:
        return None
    return result


def is_valid_form_submission(data: ParsedFormData | None) -> bool:
    """Valid iff a syntactically valid email address was extracted."""
    if data is None or not data.customer_email:
        return False
    return bool(_VALID_EMAIL_RE.match(data.customer_email))
