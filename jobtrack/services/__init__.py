"""External service clients."""

from jobtrack.services.gmail import GmailClient

__all__ = ["GmailClient"]
