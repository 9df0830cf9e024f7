"""
Exception hierarchy for the sync pipeline.
"""


class JobTrackError(Exception):
    """Base class for all pipeline errors."""


class InvalidSyncRequestError(JobTrackError):
    """Bad sync input (missing identity, bad window). Raised before any I/O."""


class SyncConflictError(JobTrackError):
    """A sync is already running in this process."""


class MailboxError(JobTrackError):
    """Mailbox access failed (token refresh, search or transport)."""


class TransportError(JobTrackError):
    """The language-model backend call failed."""


class RateLimitError(TransportError):
    """
    The backend refused the call because of a rate limit.

    Args:
        retry_delay: Server-suggested delay in seconds, if any
        daily: True when the backend says the daily quota is the one exhausted
    """

    def __init__(self, message: str, retry_delay: float | None = None, daily: bool = False):
        super().__init__(message)
        self.retry_delay = retry_delay
        self.daily = daily


class QuotaExhaustedError(JobTrackError):
    """Daily model quota is gone. Stops the remaining worklist of a sync run."""


class ClassificationParseError(JobTrackError):
    """The model response was not the expected JSON object."""


class DuplicateEmailRecordError(JobTrackError):
    """An email record with this mailbox message id already exists."""

    def __init__(self, message_id: str):
        super().__init__(f"Email record already exists: {message_id}")
        self.message_id = message_id
