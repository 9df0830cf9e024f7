"""
Data models for the triage pipeline.

Uses dataclasses for clean, typed data structures.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


class Verdict(str, Enum):
    """Pre-filter decision for an incoming message."""

    TRUSTED = "trusted"  # Known job platform, extraction only
    NOISE = "noise"  # Known not job related, no AI call
    UNKNOWN = "unknown"  # Needs the AI to decide


class ApplicationStatus(str, Enum):
    """Pipeline stage of a job application."""

    SENT = "SENT"
    VIEWED = "VIEWED"
    INTERVIEW = "INTERVIEW"
    OFFER = "OFFER"
    REJECTED = "REJECTED"
    # Display only: derived from staleness, never classified or stored
    GHOSTED = "GHOSTED"

    @classmethod
    def pipeline(cls) -> tuple["ApplicationStatus", ...]:
        """Statuses the classifier may produce, in merge order."""
        return (cls.SENT, cls.VIEWED, cls.INTERVIEW, cls.OFFER, cls.REJECTED)

    @property
    def rank(self) -> int:
        """Position in the merge order. REJECTED ranks highest as the most terminal stage."""
        try:
            return self.pipeline().index(self)
        except ValueError:
            raise ValueError(f"{self.value} has no merge rank") from None

    @classmethod
    def coerce(cls, value: Any) -> "ApplicationStatus":
        """Map model output to a pipeline status, defaulting to SENT."""
        if isinstance(value, str):
            for status in cls.pipeline():
                if status.value == value.strip().upper():
                    return status
        return cls.SENT


@dataclass(frozen=True)
class RawMessage:
    """A decoded mailbox message. Immutable once fetched."""

    message_id: str
    sender: str = ""
    subject: str = ""
    body: str = ""
    snippet: str = ""
    received_at: datetime | None = None


@dataclass(frozen=True)
class PreFilterVerdict:
    """Pre-filter decision plus a human-readable reason (logged, never stored)."""

    verdict: Verdict
    reason: str


NOT_APPLICABLE = "N/A"
UNSPECIFIED_POSITION = "Not specified"


def as_bool(value: Any) -> bool:
    """Interpret a JSON flag, accepting "true"/"false" strings."""
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


@dataclass
class ClassificationResult:
    """Result from the classifier gateway."""

    company: str
    position: str
    status: ApplicationStatus = ApplicationStatus.SENT
    confidence: float = 0.5
    is_job_related: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_company: str) -> "ClassificationResult":
        """
        Create ClassificationResult from a model response dict.

        Unknown statuses fall back to SENT, missing or non-finite confidence to 0.5 and a
        missing company to ``default_company``.
        """
        confidence = data.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not math.isfinite(confidence):
            confidence = 0.5

        company = data.get("company")
        position = data.get("position")

        return cls(
            company=company.strip() if isinstance(company, str) and company.strip() else default_company,
            position=position.strip() if isinstance(position, str) and position.strip() else UNSPECIFIED_POSITION,
            status=ApplicationStatus.coerce(data.get("status")),
            confidence=min(max(float(confidence), 0.0), 1.0),
            is_job_related=as_bool(data.get("isJobRelated", True)),
        )

    @classmethod
    def not_job_related(cls) -> "ClassificationResult":
        """Sentinel for messages the model judged unrelated to a job application."""
        return cls(
            company=NOT_APPLICABLE,
            position=NOT_APPLICABLE,
            status=ApplicationStatus.SENT,
            confidence=0.0,
            is_job_related=False,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging and API output."""
        return {
            "company": self.company,
            "position": self.position,
            "status": self.status.value,
            "confidence": self.confidence,
            "isJobRelated": self.is_job_related,
        }


@dataclass
class Application:
    """A tracked job application."""

    id: str
    user_id: str
    company: str
    position: str
    status: ApplicationStatus = ApplicationStatus.SENT
    created_at: datetime | None = None
    updated_at: datetime | None = None
    emails: list["EmailRecord"] = field(default_factory=list)

    def to_dict(self, status: ApplicationStatus | None = None) -> dict[str, Any]:
        """Convert to the API payload, optionally with a display status in place of the stored one."""
        return {
            "id": self.id,
            "company": self.company,
            "position": self.position,
            "status": (status or self.status).value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "emails": [email.to_dict() for email in self.emails],
        }


@dataclass
class EmailRecord:
    """One processed mailbox message. Write-once."""

    message_id: str
    user_id: str
    subject: str = ""
    sender: str = ""
    snippet: str = ""
    application_id: str | None = None
    detected_status: ApplicationStatus | None = None
    is_job_related: bool = False
    received_at: datetime | None = None
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "subject": self.subject,
            "sender": self.sender,
            "snippet": self.snippet,
            "detectedStatus": self.detected_status.value if self.detected_status else None,
            "isJobRelated": self.is_job_related,
            "receivedAt": self.received_at.isoformat() if self.received_at else None,
        }


@dataclass
class SyncSummary:
    """Counters returned by a sync run."""

    processed: int = 0
    skipped: int = 0
    ai_calls: int = 0
    total: int = 0
    elapsed_ms: int = 0
    failed: int = 0
    quota_exhausted: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to the response payload."""
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "aiCalls": self.ai_calls,
            "total": self.total,
            "elapsedMs": self.elapsed_ms,
            "failed": self.failed,
            "quotaExhausted": self.quota_exhausted,
        }


def display_status(
    application: Application,
    ghosted_after_days: int,
    now: datetime | None = None,
) -> ApplicationStatus:
    """
    Status to show for an application.

    A SENT application with no update for ``ghosted_after_days`` is shown as
    GHOSTED. Nothing is written back.
    """
    if application.status != ApplicationStatus.SENT or application.updated_at is None:
        return application.status

    now = now or datetime.now(timezone.utc)
    updated_at = application.updated_at
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=timezone.utc)

    if now - updated_at > timedelta(days=ghosted_after_days):
        return ApplicationStatus.GHOSTED
    return application.status
