"""
Gmail REST client for fetching recent job-related messages.
"""

import base64
import binascii
import html
import re
from datetime import datetime, timezone
from typing import Any

import httpx
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from jobtrack.config import settings
from jobtrack.core.database import Database
from jobtrack.core.errors import MailboxError
from jobtrack.core.logging import get_logger
from jobtrack.core.models import RawMessage

log = get_logger(__name__)

# Search: mail from a job platform OR with a job-related subject
JOB_PLATFORMS = [
    "from:hellowork",
    "from:indeed",
    "from:welcometothejungle",
    "from:linkedin.com",
    "from:monster",
    "from:apec",
    "from:pole-emploi",
    "from:francetravail",
    "from:glassdoor",
    "from:talent.io",
    "from:mytalentplug",
    "from:jobteaser",
    "from:cadremploi",
]

JOB_SUBJECTS = [
    "subject:candidature",
    "subject:entretien",
    "subject:interview",
    "subject:recrutement",
    "subject:(votre candidature)",
    "subject:(your application)",
    "subject:(offre d'emploi)",
]

STYLE_OR_SCRIPT = re.compile(r"<(style|script)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
TAG = re.compile(r"<[^>]+>")
WHITESPACE = re.compile(r"\s+")


def build_search_query(newer_than_days: int) -> str:
    """Gmail search query for the last N days."""
    platforms = " OR ".join(JOB_PLATFORMS)
    subjects = " OR ".join(JOB_SUBJECTS)
    return f"newer_than:{newer_than_days}d AND ({{{platforms}}} OR {{{subjects}}})"


def decode_base64url(data: str) -> str:
    """Decode Gmail's unpadded base64url body data to text."""
    if not data:
        return ""
    try:
        padded = data + "=" * (-len(data) % 4)
        return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return ""


def strip_html(text: str) -> str:
    """Strip tags, style and script blocks, and decode entities."""
    if not text:
        return ""
    text = STYLE_OR_SCRIPT.sub("", text)
    text = TAG.sub(" ", text)
    text = html.unescape(text)
    return WHITESPACE.sub(" ", text).strip()


def _find_part(payload: dict[str, Any], mime_type: str) -> str:
    """Depth-first search of a MIME tree for the first non-empty part of a type."""
    if payload.get("mimeType") == mime_type:
        data = (payload.get("body") or {}).get("data")
        if data:
            return decode_base64url(data)

    for part in payload.get("parts") or []:
        found = _find_part(part, mime_type)
        if found:
            return found
    return ""


def extract_text_body(message: dict[str, Any]) -> str:
    """
    Plain-text body of a Gmail message.

    Prefers text/plain, then stripped text/html, then a single-part body,
    then the snippet.
    """
    payload = message.get("payload") or {}

    text = _find_part(payload, "text/plain")
    if text:
        return text

    html_text = _find_part(payload, "text/html")
    if html_text:
        return strip_html(html_text)

    data = (payload.get("body") or {}).get("data")
    if data:
        body = decode_base64url(data)
        if payload.get("mimeType") == "text/html":
            return strip_html(body)
        return body

    return message.get("snippet", "")


def get_header(headers: list[dict[str, str]], name: str) -> str:
    """Case-insensitive header lookup."""
    for header in headers or []:
        if header.get("name", "").lower() == name.lower():
            return header.get("value", "")
    return ""


def parse_message(detail: dict[str, Any]) -> RawMessage:
    """Convert a Gmail `format=full` message into a RawMessage."""
    headers = (detail.get("payload") or {}).get("headers") or []

    received_at = None
    internal_date = detail.get("internalDate")
    if internal_date:
        received_at = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)

    return RawMessage(
        message_id=detail["id"],
        sender=get_header(headers, "From"),
        subject=get_header(headers, "Subject"),
        body=extract_text_body(detail),
        snippet=html.unescape(detail.get("snippet", "")),
        received_at=received_at,
    )


class GmailClient:
    """Gmail API client using the user's stored Google OAuth tokens."""

    def __init__(
        self,
        db: Database | None = None,
        http_client: httpx.Client | None = None,
        api_url: str | None = None,
        token_url: str | None = None,
    ):
        self.db = db or Database()
        self.api_url = (api_url or settings.gmail_api_url).rstrip("/")
        self.token_url = token_url or settings.google_token_url
        self._client = http_client or httpx.Client(timeout=settings.gmail_timeout_seconds)

    def fetch_unseen_messages(self, user_id: str, window_days: int, max_count: int) -> list[RawMessage]:
        """
        Fetch recent job-related messages that have no email record yet.

        Args:
            user_id: Owner of the mailbox
            window_days: Look back this many days
            max_count: Maximum search results to consider

        Returns:
            Messages sorted oldest first

        Raises:
            MailboxError: No usable token, or the search request failed
        """
        access_token = self._get_access_token(user_id)
        headers = {"Authorization": f"Bearer {access_token}"}

        query = build_search_query(window_days)
        log.info("gmail_searching", query=query, max_results=max_count)

        try:
            response = self._client.get(
                f"{self.api_url}/messages",
                params={"q": query, "maxResults": max_count},
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            log.error("gmail_search_http_error", status=e.response.status_code, error=str(e))
            raise MailboxError(f"Gmail search failed: {e.response.status_code}") from e
        except httpx.RequestError as e:
            log.error("gmail_search_request_error", error=str(e))
            raise MailboxError(f"Failed to reach Gmail: {e}") from e

        message_ids = [m["id"] for m in response.json().get("messages", [])]
        if not message_ids:
            log.info("gmail_no_matches")
            return []

        seen = self.db.existing_message_ids(message_ids)
        new_ids = [message_id for message_id in message_ids if message_id not in seen]
        log.info("gmail_matches", found=len(message_ids), already_processed=len(seen), new=len(new_ids))

        messages = []
        for message_id in new_ids:
            message = self._fetch_message(message_id, headers)
            if message:
                messages.append(message)

        epoch = datetime.min.replace(tzinfo=timezone.utc)
        messages.sort(key=lambda m: m.received_at or epoch)
        return messages

    def _fetch_message(self, message_id: str, headers: dict[str, str]) -> RawMessage | None:
        """Fetch one message; failures are logged and skipped."""
        try:
            response = self._client.get(
                f"{self.api_url}/messages/{message_id}",
                params={"format": "full"},
                headers=headers,
            )
            response.raise_for_status()
            message = parse_message(response.json())
        except httpx.HTTPError as e:
            log.warning("gmail_fetch_message_failed", message_id=message_id, error=str(e))
            return None
        except (KeyError, ValueError) as e:
            log.warning("gmail_parse_message_failed", message_id=message_id, error=str(e))
            return None

        log.info(
            "gmail_message_fetched",
            message_id=message_id,
            subject=message.subject,
            sender=message.sender,
        )
        return message

    def _get_access_token(self, user_id: str) -> str:
        """Stored access token, refreshed through google-auth when expired."""
        account = self.db.get_account(user_id)
        if not account or not account.get("access_token"):
            raise MailboxError("No Google account linked. Please reconnect your Google account.")

        creds = self._build_credentials(account)
        if creds.valid:
            return creds.token

        if not creds.refresh_token:
            raise MailboxError("Access token expired and no refresh token stored")

        try:
            creds.refresh(Request())
        except RefreshError as e:
            log.error("gmail_token_refresh_failed", user_id=user_id, error=str(e))
            raise MailboxError("Failed to refresh Google access token") from e
        except TransportError as e:
            log.error("gmail_token_refresh_request_error", user_id=user_id, error=str(e))
            raise MailboxError(f"Failed to reach Google OAuth: {e}") from e

        # google-auth keeps expiry as naive UTC
        expires_at = creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else None
        self.db.update_access_token(user_id, creds.token, expires_at)
        return creds.token

    def _build_credentials(self, account: dict[str, Any]) -> Credentials:
        creds = Credentials(
            token=account["access_token"],
            refresh_token=account.get("refresh_token"),
            token_uri=self.token_url,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
        )
        expires_at = account.get("expires_at")
        if expires_at:
            if expires_at.tzinfo is not None:
                expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
            creds.expiry = expires_at
        return creds

    def close(self):
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
