"""
Database repository for applications and email history.

Provides PostgreSQL operations for the sync pipeline and the read API.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator, Iterable

import psycopg
from psycopg.rows import dict_row

from jobtrack.config import settings
from jobtrack.core.errors import DuplicateEmailRecordError
from jobtrack.core.logging import get_logger
from jobtrack.core.models import Application, ApplicationStatus, EmailRecord

log = get_logger(__name__)


class Database:
    """PostgreSQL database operations for application tracking."""

    def __init__(self, connection_string: str | None = None):
        """
        Initialize database connection.

        Args:
            connection_string: PostgreSQL connection URL. Uses settings if not provided.
        """
        self.connection_string = connection_string or settings.database_url

    @contextmanager
    def get_connection(self) -> Generator[psycopg.Connection, None, None]:
        """Get a database connection as a context manager."""
        conn = psycopg.connect(self.connection_string, row_factory=dict_row)
        try:
            yield conn
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Initialize database schema (create tables if not exist)."""
        schema_sql = """
        -- accounts: Google OAuth tokens per user
        CREATE TABLE IF NOT EXISTS accounts (
            user_id VARCHAR(64) PRIMARY KEY,
            access_token TEXT,
            refresh_token TEXT,
            expires_at TIMESTAMPTZ
        );

        -- applications: One row per (user, company, position)
        CREATE TABLE IF NOT EXISTS applications (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            company VARCHAR(255) NOT NULL,
            position VARCHAR(255) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'SENT',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_applications_lookup
            ON applications(user_id, LOWER(company), LOWER(position));
        CREATE INDEX IF NOT EXISTS idx_applications_updated ON applications(user_id, updated_at DESC);

        -- email_records: Write-once history, one per mailbox message
        CREATE TABLE IF NOT EXISTS email_records (
            id SERIAL PRIMARY KEY,
            message_id VARCHAR(255) UNIQUE NOT NULL,
            user_id VARCHAR(64) NOT NULL,
            application_id VARCHAR(36) REFERENCES applications(id),
            subject TEXT,
            sender VARCHAR(512),
            snippet TEXT,
            detected_status VARCHAR(20),
            is_job_related BOOLEAN DEFAULT FALSE,
            received_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_email_records_application ON email_records(application_id);
        CREATE INDEX IF NOT EXISTS idx_email_records_received ON email_records(received_at DESC);
        """

        with self.get_connection() as conn:
            conn.execute(schema_sql)
            conn.commit()
            log.info("database_schema_initialized")

    # Applications

    def find_application(self, user_id: str, company: str, position: str) -> Application | None:
        """Find an application by company and position, ignoring case."""
        sql = """
        SELECT id, user_id, company, position, status, created_at, updated_at
        FROM applications
        WHERE user_id = %s
          AND LOWER(company) = LOWER(%s)
          AND LOWER(position) = LOWER(%s)
        ORDER BY created_at ASC
        LIMIT 1
        """

        with self.get_connection() as conn:
            row = conn.execute(sql, (user_id, company, position)).fetchone()
            return self._row_to_application(row) if row else None

    def create_application(
        self,
        user_id: str,
        company: str,
        position: str,
        status: ApplicationStatus,
    ) -> Application:
        """Insert a new application and return it."""
        sql = """
        INSERT INTO applications (id, user_id, company, position, status)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id, user_id, company, position, status, created_at, updated_at
        """

        with self.get_connection() as conn:
            row = conn.execute(sql, (
                str(uuid.uuid4()),
                user_id,
                company,
                position,
                status.value,
            )).fetchone()
            conn.commit()
            if not row:
                raise RuntimeError(f"Failed to insert application: {company} / {position}")

            application = self._row_to_application(row)
            log.info("application_inserted", application_id=application.id, status=status.value)
            return application

    def update_application_status(self, application_id: str, status: ApplicationStatus) -> None:
        """Set an application's status and bump updated_at."""
        sql = """
        UPDATE applications
        SET status = %s,
            updated_at = NOW()
        WHERE id = %s
        """

        with self.get_connection() as conn:
            conn.execute(sql, (status.value, application_id))
            conn.commit()
            log.info("application_status_updated", application_id=application_id, status=status.value)

    def list_applications(self, user_id: str) -> list[Application]:
        """Fetch a user's applications, most recently updated first, with email history."""
        apps_sql = """
        SELECT id, user_id, company, position, status, created_at, updated_at
        FROM applications
        WHERE user_id = %s
        ORDER BY updated_at DESC
        """
        emails_sql = """
        SELECT id, message_id, user_id, application_id, subject, sender, snippet,
               detected_status, is_job_related, received_at
        FROM email_records
        WHERE application_id = ANY(%s)
        ORDER BY received_at DESC
        """

        with self.get_connection() as conn:
            applications = [
                self._row_to_application(row)
                for row in conn.execute(apps_sql, (user_id,)).fetchall()
            ]
            if not applications:
                return []

            by_id = {application.id: application for application in applications}
            for row in conn.execute(emails_sql, (list(by_id),)).fetchall():
                by_id[row["application_id"]].emails.append(self._row_to_email_record(row))

            return applications

    # Email records

    def create_email_record(self, record: EmailRecord) -> EmailRecord:
        """
        Insert an email record.

        Raises:
            DuplicateEmailRecordError: The message id was already recorded
        """
        sql = """
        INSERT INTO email_records (
            message_id, user_id, application_id, subject, sender, snippet,
            detected_status, is_job_related, received_at
        ) VALUES (
            %(message_id)s, %(user_id)s, %(application_id)s, %(subject)s, %(sender)s,
            %(snippet)s, %(detected_status)s, %(is_job_related)s, %(received_at)s
        )
        ON CONFLICT (message_id) DO NOTHING
        RETURNING id
        """

        params = {
            "message_id": record.message_id,
            "user_id": record.user_id,
            "application_id": record.application_id,
            "subject": record.subject,
            "sender": record.sender,
            "snippet": record.snippet,
            "detected_status": record.detected_status.value if record.detected_status else None,
            "is_job_related": record.is_job_related,
            "received_at": record.received_at,
        }

        with self.get_connection() as conn:
            result = conn.execute(sql, params).fetchone()
            conn.commit()

            if not result:
                raise DuplicateEmailRecordError(record.message_id)

            record.id = result["id"]
            log.info(
                "email_record_inserted",
                email_record_id=record.id,
                message_id=record.message_id,
                application_id=record.application_id,
            )
            return record

    def existing_message_ids(self, message_ids: Iterable[str]) -> set[str]:
        """Return the subset of message ids that already have an email record."""
        ids = list(message_ids)
        if not ids:
            return set()

        with self.get_connection() as conn:
            rows = conn.execute(
                "SELECT message_id FROM email_records WHERE message_id = ANY(%s)",
                (ids,)
            ).fetchall()
            return {row["message_id"] for row in rows}

    # OAuth accounts

    def get_account(self, user_id: str) -> dict[str, Any] | None:
        """Fetch the stored Google OAuth tokens for a user."""
        with self.get_connection() as conn:
            return conn.execute(
                "SELECT user_id, access_token, refresh_token, expires_at FROM accounts WHERE user_id = %s",
                (user_id,)
            ).fetchone()

    def update_access_token(self, user_id: str, access_token: str, expires_at: datetime) -> None:
        """Store a refreshed access token."""
        with self.get_connection() as conn:
            conn.execute(
                "UPDATE accounts SET access_token = %s, expires_at = %s WHERE user_id = %s",
                (access_token, expires_at, user_id)
            )
            conn.commit()
            log.info("access_token_refreshed", user_id=user_id)

    @staticmethod
    def _row_to_application(row: dict[str, Any]) -> Application:
        return Application(
            id=row["id"],
            user_id=row["user_id"],
            company=row["company"],
            position=row["position"],
            status=ApplicationStatus(row["status"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_email_record(row: dict[str, Any]) -> EmailRecord:
        return EmailRecord(
            id=row["id"],
            message_id=row["message_id"],
            user_id=row["user_id"],
            application_id=row["application_id"],
            subject=row["subject"] or "",
            sender=row["sender"] or "",
            snippet=row["snippet"] or "",
            detected_status=ApplicationStatus(row["detected_status"]) if row["detected_status"] else None,
            is_job_related=row["is_job_related"] or False,
            received_at=row["received_at"],
        )
