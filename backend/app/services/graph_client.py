"""Thin Microsoft Graph client: app-only token and mailbox message fetch."""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..config import settings
from ..domain_errors import RemoteServiceError

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
_MESSAGE_FIELDS = (
    "id,internetMessageId,subject,from,toRecipients,body,bodyPreview,"
    "receivedDateTime,sentDateTime,conversationId"
)


def get_access_token() -> str:
    if not (settings.MICROSOFT_TENANT_ID and settings.MICROSOFT_CLIENT_ID and settings.MICROSOFT_CLIENT_SECRET):
        raise RemoteServiceError("graph", "Microsoft Graph credentials are not configured")

    url = f"https://login.microsoftonline.com/{settings.MICROSOFT_TENANT_ID}/oauth2/v2.0/token"
    try:
        response = requests.post(
            url,
            data={
                "client_id": settings.MICROSOFT_CLIENT_ID,
                "client_secret": settings.MICROSOFT_CLIENT_SECRET,
                "scope": "https://graph.microsoft.com/.default",
                "grant_type": "client_credentials",
            },
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise RemoteServiceError("graph", f"Token request failed: {exc}") from exc

    if response.status_code != 200:
        raise RemoteServiceError("graph", f"Token request HTTP_{response.status_code}")
    return response.json()["access_token"]


def fetch_message(message_id: str, *, mailbox: str | None = None) -> dict[str, Any]:
    """Fetch one message from the shared mailbox."""
    token = get_access_token()
    user = mailbox or settings.MAILBOX_EMAIL
    url = f"{GRAPH_BASE_URL}/users/{user}/messages/{message_id}"
    try:
        response = requests.get(
            url,
            headers={"Authorization": f"Bearer {token}"},
            params={"$select": _MESSAGE_FIELDS},
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.warning(f"Graph message fetch failed for {message_id}: {exc}")
        raise RemoteServiceError("graph", f"Graph request failed: {exc}") from exc

    if response.status_code != 200:
        raise RemoteServiceError("graph", f"HTTP_{response.status_code}: {response.text[:200]}")
    return response.json()


def message_id_from_resource(resource: str | None) -> str | None:
    """``Users/<id>/Messages/<message id>`` -> ``<message id>``."""
    if not resource:
        return None
    parts = resource.rstrip("/").split("/")
    for index, part in enumerate(parts[:-1]):
        if part.lower() == "messages":
            return parts[index + 1]
    return None
