"""
Sync processor: mailbox → pre-filter → classifier → reconciliation.

One run pulls a bounded batch of unseen messages, records noise without
any AI call, then classifies the rest strictly one at a time (trusted
first) and tallies the outcome.
"""

import argparse
import time

from jobtrack.config import settings
from jobtrack.core.database import Database
from jobtrack.core.errors import InvalidSyncRequestError, QuotaExhaustedError
from jobtrack.core.logging import configure_logging, get_logger, log_context
from jobtrack.core.models import RawMessage, SyncSummary
from jobtrack.processors.guard import SingleFlight, sync_guard

log = get_logger(__name__)


def validate_sync_request(user_id, window_days=None) -> None:
    """
    Reject a sync request before anything is built or touched.

    Raises:
        InvalidSyncRequestError: Blank user_id, or a window that is not a positive integer
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidSyncRequestError("user_id is required")
    if window_days is None:
        return
    if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days <= 0:
        raise InvalidSyncRequestError(f"window_days must be a positive integer, got {window_days!r}")


class SyncProcessor:
    """
    Run inbox syncs for a user.

    Only one run may be active per process: a concurrent call fails
    immediately with SyncConflictError instead of queueing.

    Stats semantics:
    - processed: job-related emails linked to an application
    - skipped: noise plus emails the classifier judged unrelated
    - ai_calls: classifier calls that returned a result (degraded ones included)
    - failed: emails whose processing raised; they stay unrecorded and are
      picked up again by the next run
    """

    def __init__(
        self,
        db: Database | None = None,
        mailbox=None,
        gateway=None,
        handler=None,
        prefilter=None,
        guard: SingleFlight | None = None,
        batch_size: int | None = None,
        default_days: int | None = None,
    ):
        self.db = db or Database()
        self.guard = guard or sync_guard
        self.batch_size = batch_size or settings.sync_batch_size
        self.default_days = default_days or settings.sync_default_days

        if prefilter is None:
            from jobtrack.filters import get_prefilter

            prefilter = get_prefilter()
        self.prefilter = prefilter

        # A mailbox built here is closed by close(); an injected one belongs to the caller
        self._owns_mailbox = mailbox is None
        if mailbox is None:
            from jobtrack.services.gmail import GmailClient

            mailbox = GmailClient(db=self.db)
        self.mailbox = mailbox

        if gateway is None:
            from jobtrack.classifiers import get_gateway

            gateway = get_gateway(generic_names=self.prefilter.rules.generic_sender_names)
        self.gateway = gateway

        if handler is None:
            from jobtrack.handlers import ApplicationHandler

            handler = ApplicationHandler(db=self.db)
        self.handler = handler

    def sync(self, user_id: str, window_days: int | None = None) -> SyncSummary:
        """
        Sync the user's recent inbox.

        Args:
            user_id: Owner of the mailbox
            window_days: Look back this many days (default from settings)

        Returns:
            SyncSummary, also when the daily AI quota cut the run short

        Raises:
            InvalidSyncRequestError: Bad input, nothing was touched
            SyncConflictError: A sync is already running
            MailboxError: Inbox could not be read; no AI call was made
        """
        validate_sync_request(user_id, window_days)
        window = self.default_days if window_days is None else window_days

        with self.guard.hold(), log_context(user_id=user_id):
            return self._run(user_id, window)

    def _run(self, user_id: str, window_days: int) -> SyncSummary:
        started = time.monotonic()
        log.info("sync_starting", window_days=window_days, batch_size=self.batch_size)

        # Oldest first, already-recorded message ids excluded by the mailbox
        messages = self.mailbox.fetch_unseen_messages(user_id, window_days, self.batch_size)
        summary = SyncSummary(total=len(messages))

        if not messages:
            summary.elapsed_ms = self._elapsed_ms(started)
            log.info("sync_no_new_emails")
            return summary

        trusted, unknown, noise = self.prefilter.partition(messages)
        log.info(
            "prefilter_complete",
            trusted=len(trusted),
            unknown=len(unknown),
            noise=len(noise),
            ai_calls_needed=len(trusted) + len(unknown),
        )

        # Noise is recorded before any AI call so it never costs quota
        for email in noise:
            try:
                self.handler.suppress(user_id, email)
            except Exception as e:
                log.error("noise_record_failed", message_id=email.message_id, error=str(e))
                summary.failed += 1
            else:
                summary.skipped += 1

        # Trusted first: they always yield an application, so partial runs keep the useful part
        worklist: list[tuple[RawMessage, bool]] = [(email, True) for email in trusted]
        worklist += [(email, False) for email in unknown]

        for index, (email, is_trusted) in enumerate(worklist):
            with log_context(message_id=email.message_id):
                try:
                    self._process_one(user_id, email, is_trusted, summary)
                except QuotaExhaustedError as e:
                    summary.quota_exhausted = True
                    log.error(
                        "sync_stopped_quota_exhausted",
                        error=str(e),
                        remaining=len(worklist) - index,
                    )
                    break
                except Exception as e:
                    summary.failed += 1
                    log.error("sync_email_error", subject=email.subject, error=str(e))

        summary.elapsed_ms = self._elapsed_ms(started)
        log.info("sync_complete", **summary.to_dict())
        return summary

    def _process_one(self, user_id: str, email: RawMessage, is_trusted: bool, summary: SyncSummary) -> None:
        """Classify one email and reconcile it, updating the counters."""
        if is_trusted:
            result = self.gateway.extract_trusted(email.sender, email.subject, email.body)
        else:
            result = self.gateway.classify_unknown(email.sender, email.subject, email.body)
        summary.ai_calls += 1

        self.handler.reconcile(user_id, email, result)

        if result.is_job_related:
            summary.processed += 1
        else:
            summary.skipped += 1

    def close(self):
        """Release the mailbox connection if this processor opened it."""
        if self._owns_mailbox:
            self.mailbox.close()

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)


def main():
    """CLI entry point for a one-off sync."""
    parser = argparse.ArgumentParser(description="Sync a user's inbox into tracked job applications")
    parser.add_argument("user_id", help="Owner of the mailbox")
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help=f"Look back this many days (default: {settings.sync_default_days})",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()

    configure_logging(log_level=args.log_level)

    processor = SyncProcessor()
    try:
        summary = processor.sync(args.user_id, args.days)
    finally:
        processor.close()
    log.info("sync_summary", **summary.to_dict())


if __name__ == "__main__":
    main()
