"""
Application reconciliation.

Turns a classified email into an application upsert plus a write-once
email history record.
"""

from jobtrack.core.database import Database
from jobtrack.core.errors import DuplicateEmailRecordError
from jobtrack.core.logging import get_logger
from jobtrack.core.models import Application, ClassificationResult, EmailRecord, RawMessage

log = get_logger(__name__)


class ApplicationHandler:
    """Find-or-create applications and record their emails."""

    def __init__(self, db: Database | None = None):
        self.db = db or Database()

    def reconcile(self, user_id: str, email: RawMessage, result: ClassificationResult) -> str | None:
        """
        Apply a classification to the user's applications.

        Not-job-related results only record the email. Otherwise the matching
        application (same company and position, ignoring case) is created or
        moved forward, never backward, along the status pipeline.

        Args:
            user_id: Owner of the mailbox
            email: The processed message
            result: Gateway classification

        Returns:
            Linked application id, or None when the email is not job related
        """
        if not result.is_job_related:
            self._record(EmailRecord(
                message_id=email.message_id,
                user_id=user_id,
                subject=email.subject,
                sender=email.sender,
                snippet=email.snippet,
                application_id=None,
                detected_status=None,
                is_job_related=False,
                received_at=email.received_at,
            ))
            return None

        application = self._upsert_application(user_id, result)

        self._record(EmailRecord(
            message_id=email.message_id,
            user_id=user_id,
            subject=email.subject,
            sender=email.sender,
            snippet=email.snippet,
            application_id=application.id,
            detected_status=result.status,
            is_job_related=True,
            received_at=email.received_at,
        ))
        return application.id

    def suppress(self, user_id: str, email: RawMessage) -> None:
        """Record a pre-filtered noise email so it is never fetched again."""
        self._record(EmailRecord(
            message_id=email.message_id,
            user_id=user_id,
            subject=email.subject,
            sender=email.sender,
            snippet=email.snippet,
            is_job_related=False,
            received_at=email.received_at,
        ))

    def _upsert_application(self, user_id: str, result: ClassificationResult) -> Application:
        """Create the application, or advance its status when the new one ranks higher."""
        application = self.db.find_application(user_id, result.company, result.position)

        if application is None:
            application = self.db.create_application(
                user_id,
                result.company,
                result.position,
                result.status,
            )
            log.info(
                "application_created",
                application_id=application.id,
                company=result.company,
                position=result.position,
                status=result.status.value,
            )
            return application

        if result.status.rank > application.status.rank:
            log.info(
                "application_advanced",
                application_id=application.id,
                from_status=application.status.value,
                to_status=result.status.value,
            )
            self.db.update_application_status(application.id, result.status)
            application.status = result.status
        else:
            log.info(
                "application_unchanged",
                application_id=application.id,
                status=application.status.value,
                detected=result.status.value,
            )

        return application

    def _record(self, record: EmailRecord) -> None:
        """Insert an email record; an already-recorded message id is not an error."""
        try:
            self.db.create_email_record(record)
        except DuplicateEmailRecordError:
            log.info("email_record_exists", message_id=record.message_id)
