"""
Shared pytest fixtures for jobtrack tests.
"""

import uuid
from datetime import datetime, timezone

import pytest

from jobtrack.classifiers.base import BaseTransport
from jobtrack.classifiers.gateway import ClassifierGateway
from jobtrack.core.errors import DuplicateEmailRecordError
from jobtrack.core.models import Application, ApplicationStatus, EmailRecord, RawMessage
from jobtrack.filters.prefilter import PreFilter
from jobtrack.filters.rules import load_rules
from jobtrack.handlers.application.handler import ApplicationHandler


class FakeDatabase:
    """In-memory stand-in for Database with the same repository methods."""

    def __init__(self):
        self.applications: dict[str, Application] = {}
        self.email_records: dict[str, EmailRecord] = {}
        self.accounts: dict[str, dict] = {}
        self.status_updates: list[tuple[str, ApplicationStatus]] = []

    def find_application(self, user_id, company, position):
        for application in self.applications.values():
            if (
                application.user_id == user_id
                and application.company.lower() == company.lower()
                and application.position.lower() == position.lower()
            ):
                return Application(
                    id=application.id,
                    user_id=application.user_id,
                    company=application.company,
                    position=application.position,
                    status=application.status,
                    created_at=application.created_at,
                    updated_at=application.updated_at,
                )
        return None

    def create_application(self, user_id, company, position, status):
        now = datetime.now(timezone.utc)
        application = Application(
            id=str(uuid.uuid4()),
            user_id=user_id,
            company=company,
            position=position,
            status=status,
            created_at=now,
            updated_at=now,
        )
        self.applications[application.id] = application
        return application

    def update_application_status(self, application_id, status):
        self.status_updates.append((application_id, status))
        application = self.applications[application_id]
        application.status = status
        application.updated_at = datetime.now(timezone.utc)

    def list_applications(self, user_id):
        applications = [a for a in self.applications.values() if a.user_id == user_id]
        for application in applications:
            application.emails = [
                r for r in self.email_records.values() if r.application_id == application.id
            ]
        return sorted(applications, key=lambda a: a.updated_at, reverse=True)

    def create_email_record(self, record):
        if record.message_id in self.email_records:
            raise DuplicateEmailRecordError(record.message_id)
        record.id = len(self.email_records) + 1
        self.email_records[record.message_id] = record
        return record

    def existing_message_ids(self, message_ids):
        return {message_id for message_id in message_ids if message_id in self.email_records}

    def get_account(self, user_id):
        return self.accounts.get(user_id)

    def update_access_token(self, user_id, access_token, expires_at):
        self.accounts[user_id]["access_token"] = access_token
        self.accounts[user_id]["expires_at"] = expires_at


class FakeTransport(BaseTransport):
    """Transport replaying scripted responses. Exceptions in the script are raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeMailbox:
    """Mailbox returning a fixed batch. ``on_fetch`` runs inside the fetch call."""

    def __init__(self, messages=None, on_fetch=None, error=None):
        self.messages = list(messages or [])
        self.on_fetch = on_fetch
        self.error = error
        self.calls: list[tuple[str, int, int]] = []

    def fetch_unseen_messages(self, user_id, window_days, max_count):
        self.calls.append((user_id, window_days, max_count))
        if self.on_fetch:
            self.on_fetch()
        if self.error:
            raise self.error
        return list(self.messages)


def _message(message_id: str, sender: str, subject: str, body: str = "") -> RawMessage:
    return RawMessage(
        message_id=message_id,
        sender=sender,
        subject=subject,
        body=body or subject,
        snippet=subject[:40],
        received_at=datetime(2025, 2, 3, 9, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_message():
    """Factory for a RawMessage with a fixed timestamp."""
    return _message


@pytest.fixture
def make_mailbox():
    """Factory for a mailbox returning a fixed batch."""
    return FakeMailbox


@pytest.fixture
def make_transport():
    """Factory for a transport replaying scripted responses."""
    return FakeTransport


@pytest.fixture(scope="session")
def rules():
    """Packaged default rule set."""
    return load_rules()


@pytest.fixture
def prefilter(rules) -> PreFilter:
    return PreFilter(rules)


@pytest.fixture
def fake_db() -> FakeDatabase:
    """In-memory database for testing without a real DB connection."""
    return FakeDatabase()


@pytest.fixture
def handler(fake_db) -> ApplicationHandler:
    return ApplicationHandler(db=fake_db)


@pytest.fixture
def make_gateway():
    """Factory for a gateway over scripted responses that never sleeps."""
    def _make(*responses, **kwargs):
        transport = FakeTransport(*responses)
        kwargs.setdefault("max_retries", 3)
        kwargs.setdefault("base_backoff", 10.0)
        kwargs.setdefault("quota_delay_threshold", 60.0)
        kwargs.setdefault("sleep", lambda seconds: None)
        return ClassifierGateway(transport, **kwargs)
    return _make


@pytest.fixture
def linkedin_confirmation() -> RawMessage:
    """Application confirmation from the social network's job sender."""
    return _message(
        "msg-linkedin-1",
        "LinkedIn <jobs-noreply@linkedin.com>",
        "Your application was sent to Acme",
        "Your application was sent to Acme for the Backend Engineer role.",
    )


@pytest.fixture
def notion_digest() -> RawMessage:
    """Digest from a consumer platform."""
    return _message("msg-notion-1", "Notion <newsletter@notion.so>", "Your weekly digest")


@pytest.fixture
def recruiter_email() -> RawMessage:
    """Mail from a company domain the rules know nothing about."""
    return _message(
        "msg-recruiter-1",
        "Jane Doe <jane@recrulab.io>",
        "Quick question",
        "Hi, are you free for a call about the Data Engineer opening?",
    )
