"""
Classifier gateway.

Wraps a language-model transport behind two modes:
- extract_trusted: message is known to be job related, extract details only
- classify_unknown: decide relevance first, then extract

Owns retry/backoff on throttling and daily-quota detection. Any other
failure degrades to a deterministic result guessed from the sender.
"""

import json
import re
import time
from typing import Any, Callable

from jobtrack.config import settings
from jobtrack.core.errors import ClassificationParseError, QuotaExhaustedError, RateLimitError
from jobtrack.core.logging import get_logger
from jobtrack.core.models import (
    ApplicationStatus,
    ClassificationResult,
    UNSPECIFIED_POSITION,
    as_bool,
)
from jobtrack.classifiers.base import BaseTransport
from jobtrack.classifiers.limiter import NoopLimiter
from jobtrack.classifiers.prompts import CLASSIFY_AND_EXTRACT_PROMPT, EXTRACT_PROMPT

log = get_logger(__name__)

UNKNOWN_COMPANY = "Unknown"
DEFAULT_GENERIC_NAMES = ("linkedin", "indeed")

DISPLAY_NAME = re.compile(r'^\s*"?([^"<]+)"?\s*<')
FIRST_DOMAIN_LABEL = re.compile(r"@([^.>\s]+)")


def fallback_company(sender: str, generic_names: tuple[str, ...] | list[str] = DEFAULT_GENERIC_NAMES) -> str:
    """
    Guess the company from a From header.

    Prefers the display name ("Recrulab <jobs@recrulab.io>" -> "Recrulab")
    unless it is a generic platform name, then the first label of the domain
    ("jobs@acme.io" -> "Acme"), then "Unknown".
    """
    sender = sender or ""

    name_match = DISPLAY_NAME.match(sender)
    if name_match:
        name = name_match.group(1).strip()
        if name and name.lower() not in generic_names:
            return name

    domain_match = FIRST_DOMAIN_LABEL.search(sender)
    if domain_match:
        label = domain_match.group(1)
        return label[:1].upper() + label[1:]

    return UNKNOWN_COMPANY


def parse_response(response_text: str) -> dict[str, Any]:
    """
    Parse the JSON object from a model response.

    Raises:
        ClassificationParseError: Not JSON, or not a JSON object
    """
    text = (response_text or "").strip()

    # Remove markdown code blocks if present
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # Remove opening ```
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]  # Remove closing ```
        text = "\n".join(lines)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ClassificationParseError(f"Model response is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise ClassificationParseError(f"Model response is not a JSON object: {type(data).__name__}")
    return data


class ClassifierGateway:
    """Classify and extract job application details from emails."""

    def __init__(
        self,
        transport: BaseTransport,
        limiter=None,
        max_retries: int | None = None,
        base_backoff: float | None = None,
        quota_delay_threshold: float | None = None,
        trusted_body_limit: int | None = None,
        unknown_body_limit: int | None = None,
        generic_names: tuple[str, ...] | list[str] = DEFAULT_GENERIC_NAMES,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.limiter = limiter or NoopLimiter()
        self.max_retries = settings.classifier_max_retries if max_retries is None else max_retries
        self.base_backoff = settings.classifier_base_backoff_seconds if base_backoff is None else base_backoff
        self.quota_delay_threshold = (
            settings.quota_delay_threshold_seconds if quota_delay_threshold is None else quota_delay_threshold
        )
        self.trusted_body_limit = trusted_body_limit or settings.trusted_body_limit
        self.unknown_body_limit = unknown_body_limit or settings.unknown_body_limit
        self.generic_names = tuple(generic_names)
        self._sleep = sleep

    def extract_trusted(self, sender: str, subject: str, body: str) -> ClassificationResult:
        """
        Extract company, position and status from a known job email.

        The result is always job related; a failed call degrades to a
        low-confidence SENT guess rather than losing the application.

        Raises:
            QuotaExhaustedError: Daily model quota is exhausted
        """
        prompt = EXTRACT_PROMPT.format(
            sender=sender,
            subject=subject,
            body=(body or "")[:self.trusted_body_limit],
        )

        log.info("classifier_extracting", tier="trusted", subject=subject)

        try:
            data = parse_response(self._complete(prompt))
        except QuotaExhaustedError:
            raise
        except Exception as e:
            log.error("classifier_extract_failed", error=str(e))
            return self._degraded(sender, is_job_related=True)

        result = ClassificationResult.from_dict(data, default_company=self._fallback_company(sender))
        result.is_job_related = True

        log.info("classifier_extracted", **result.to_dict())
        return result

    def classify_unknown(self, sender: str, subject: str, body: str) -> ClassificationResult:
        """
        Decide whether an email is about a job application, and extract it if so.

        A failed call degrades to a not-job-related guess so unknown senders
        never create applications by accident.

        Raises:
            QuotaExhaustedError: Daily model quota is exhausted
        """
        prompt = CLASSIFY_AND_EXTRACT_PROMPT.format(
            sender=sender,
            subject=subject,
            body=(body or "")[:self.unknown_body_limit],
        )

        log.info("classifier_classifying", tier="unknown", subject=subject)

        try:
            data = parse_response(self._complete(prompt))
        except QuotaExhaustedError:
            raise
        except Exception as e:
            log.error("classifier_classify_failed", error=str(e))
            return self._degraded(sender, is_job_related=False)

        if not as_bool(data.get("isJobRelated", False)):
            log.info("classifier_not_job_related", subject=subject)
            return ClassificationResult.not_job_related()

        result = ClassificationResult.from_dict(data, default_company=self._fallback_company(sender))
        result.is_job_related = True

        log.info("classifier_extracted", **result.to_dict())
        return result

    def _complete(self, prompt: str) -> str:
        """Call the transport, retrying throttles and stopping on daily quota exhaustion.

        Uses exponential backoff (base, 2x, 4x ...) or the server-suggested
        delay, whichever is longer.

        Raises:
            QuotaExhaustedError: Retry hint absent or too long, or backend reports a daily quota
            RateLimitError: Still throttled after max_retries
            TransportError: Any other transport failure (not retried)
        """
        for attempt in range(self.max_retries + 1):
            self.limiter.acquire()
            try:
                return self.transport.complete(prompt)
            except RateLimitError as e:
                if self._is_quota_exhausted(e):
                    log.error("classifier_quota_exhausted", retry_delay=e.retry_delay, daily=e.daily)
                    raise QuotaExhaustedError(str(e)) from e

                if attempt >= self.max_retries:
                    log.error("classifier_rate_limit_retries_exhausted", attempts=attempt + 1)
                    raise

                wait_time = max(e.retry_delay or 0.0, self.base_backoff * (2 ** attempt))
                log.warning(
                    "classifier_rate_limited_retrying",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    wait_seconds=wait_time,
                )
                self._sleep(wait_time)

    def _is_quota_exhausted(self, error: RateLimitError) -> bool:
        """Short retry hint means a per-minute throttle; long or missing means the day's quota is gone."""
        if error.daily:
            return True
        if error.retry_delay is None:
            return True
        return error.retry_delay > self.quota_delay_threshold

    def _fallback_company(self, sender: str) -> str:
        return fallback_company(sender, self.generic_names)

    def _degraded(self, sender: str, is_job_related: bool) -> ClassificationResult:
        """Deterministic result used when the model call fails."""
        return ClassificationResult(
            company=self._fallback_company(sender),
            position=UNSPECIFIED_POSITION,
            status=ApplicationStatus.SENT,
            confidence=0.1,
            is_job_related=is_job_related,
        )
