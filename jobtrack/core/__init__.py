"""Core modules for the triage pipeline."""

from .logging import configure_logging, get_logger
from .models import (
    Application,
    ApplicationStatus,
    ClassificationResult,
    EmailRecord,
    PreFilterVerdict,
    RawMessage,
    SyncSummary,
    Verdict,
)
from .database import Database

__all__ = [
    "configure_logging",
    "get_logger",
    "Application",
    "ApplicationStatus",
    "ClassificationResult",
    "EmailRecord",
    "PreFilterVerdict",
    "RawMessage",
    "SyncSummary",
    "Verdict",
    "Database",
]
