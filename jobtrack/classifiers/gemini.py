"""
Gemini transport implementation.
"""

import re
from typing import Any

import httpx
from google import genai
from google.genai import errors, types

from jobtrack.config import settings
from jobtrack.core.errors import RateLimitError, TransportError
from jobtrack.core.logging import get_logger
from jobtrack.classifiers.base import BaseTransport

log = get_logger(__name__)

RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"
QUOTA_FAILURE_TYPE = "type.googleapis.com/google.rpc.QuotaFailure"
DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)s\s*$")


def _error_details(details: Any) -> list[dict]:
    """Pull the google.rpc detail entries out of an API error payload."""
    if not isinstance(details, dict):
        return []
    error = details.get("error", details)
    if not isinstance(error, dict):
        return []
    entries = error.get("details") or []
    return [entry for entry in entries if isinstance(entry, dict)]


def parse_retry_delay(details: Any) -> float | None:
    """
    Read the RetryInfo delay from an API error payload.

    Returns:
        Delay in seconds ("37s" -> 37.0), or None when the server gave no hint
    """
    for entry in _error_details(details):
        if entry.get("@type") != RETRY_INFO_TYPE:
            continue
        match = DURATION.match(str(entry.get("retryDelay", "")))
        if match:
            return float(match.group(1))
    return None


def is_daily_quota(details: Any) -> bool:
    """Check whether a QuotaFailure violation names a per-day quota."""
    for entry in _error_details(details):
        if entry.get("@type") != QUOTA_FAILURE_TYPE:
            continue
        for violation in entry.get("violations") or []:
            if "perday" in str(violation.get("quotaId", "")).lower():
                return True
    return False


class GeminiTransport(BaseTransport):
    """Gemini AI-based transport returning JSON text."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: genai.Client | None = None,
    ):
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model or settings.gemini_model

        if client is None:
            if not self.api_key:
                raise ValueError("GEMINI_API_KEY is required")
            client = genai.Client(api_key=self.api_key)
        self.client = client

        self.config = types.GenerateContentConfig(
            temperature=0.1,
            max_output_tokens=256,
            response_mime_type="application/json",
        )

    def complete(self, prompt: str) -> str:
        """
        Generate a JSON response for the prompt.

        Raises:
            RateLimitError: HTTP 429 / RESOURCE_EXHAUSTED
            TransportError: Any other API or network failure
        """
        try:
            response = self.client.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=self.config,
            )
        except errors.APIError as e:
            if e.code == 429 or e.status == "RESOURCE_EXHAUSTED":
                retry_delay = parse_retry_delay(e.details)
                daily = is_daily_quota(e.details)
                log.warning("gemini_rate_limit", retry_delay=retry_delay, daily=daily)
                raise RateLimitError(str(e), retry_delay=retry_delay, daily=daily) from e

            if e.code in (401, 403):
                log.error("gemini_auth_error", error=str(e))
            else:
                log.error("gemini_error", code=e.code, error=str(e))
            raise TransportError(f"Gemini API error: {e}") from e

        except httpx.HTTPError as e:
            log.error("gemini_request_error", error=str(e))
            raise TransportError(f"Failed to reach Gemini: {e}") from e

        return response.text or "{}"
