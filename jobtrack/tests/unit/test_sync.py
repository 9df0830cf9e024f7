"""Unit tests for the sync processor."""

import json
from unittest.mock import MagicMock

import pytest

from jobtrack.core.errors import (
    InvalidSyncRequestError,
    MailboxError,
    RateLimitError,
    SyncConflictError,
)
from jobtrack.core.models import ApplicationStatus
from jobtrack.processors.guard import SingleFlight
from jobtrack.processors.sync import SyncProcessor

ACME_SENT = json.dumps({"company": "Acme", "position": "Backend Engineer", "status": "SENT", "confidence": 0.9})
NOT_JOB = json.dumps({"isJobRelated": False})


@pytest.fixture
def make_processor(fake_db, prefilter, handler, make_gateway, make_mailbox):
    """Factory for a processor over in-memory collaborators."""
    def _make(messages=None, responses=(ACME_SENT,), mailbox=None, gateway=None, **kwargs):
        return SyncProcessor(
            db=fake_db,
            mailbox=mailbox or make_mailbox(messages),
            gateway=gateway or make_gateway(*responses),
            handler=handler,
            prefilter=prefilter,
            guard=kwargs.pop("guard", SingleFlight("test-sync")),
            batch_size=kwargs.pop("batch_size", 50),
            default_days=kwargs.pop("default_days", 3),
        )
    return _make


class TestSyncScenarios:
    """End-to-end scenarios over fake collaborators."""

    def test_trusted_confirmation_creates_application(self, make_processor, fake_db, linkedin_confirmation):
        processor = make_processor([linkedin_confirmation])

        summary = processor.sync("user-1")

        assert summary.processed == 1
        assert summary.skipped == 0
        assert summary.ai_calls == 1
        assert summary.total == 1
        [application] = fake_db.applications.values()
        assert application.company == "Acme"
        assert application.status == ApplicationStatus.SENT
        assert len(fake_db.email_records) == 1

    def test_noise_costs_no_ai_calls(self, make_processor, fake_db, make_message, notion_digest):
        messages = [
            notion_digest,
            make_message("m2", "jobalerts-noreply@linkedin.com", "5 new jobs for you"),
            make_message("m3", "billing@acme.io", "Your invoice"),
        ]
        processor = make_processor(messages)

        summary = processor.sync("user-1")

        assert summary.ai_calls == 0
        assert summary.processed == 0
        assert summary.skipped == 3
        assert summary.total == 3
        assert processor.gateway.transport.prompts == []
        assert fake_db.applications == {}
        assert all(r.application_id is None for r in fake_db.email_records.values())
        assert len(fake_db.email_records) == 3

    def test_unknown_not_job_related_is_skipped(self, make_processor, fake_db, recruiter_email):
        processor = make_processor([recruiter_email], responses=(NOT_JOB,))

        summary = processor.sync("user-1")

        assert summary.skipped == 1
        assert summary.processed == 0
        assert summary.ai_calls == 1
        assert fake_db.applications == {}
        assert fake_db.email_records[recruiter_email.message_id].application_id is None

    def test_trusted_processed_before_unknown(self, make_processor, recruiter_email, linkedin_confirmation):
        processor = make_processor([recruiter_email, linkedin_confirmation], responses=(ACME_SENT, NOT_JOB))

        processor.sync("user-1")

        prompts = processor.gateway.transport.prompts
        assert "Your application was sent to Acme" in prompts[0]
        assert "Quick question" in prompts[1]

    def test_empty_batch(self, make_processor):
        processor = make_processor([])

        summary = processor.sync("user-1")

        assert summary.to_dict()["total"] == 0
        assert summary.ai_calls == 0

    def test_mailbox_window_and_batch_size(self, make_processor, make_mailbox):
        mailbox = make_mailbox([])
        processor = make_processor(mailbox=mailbox, batch_size=20)

        processor.sync("user-1", 7)
        processor.sync("user-1")

        assert mailbox.calls == [("user-1", 7, 20), ("user-1", 3, 20)]


class TestSyncFailures:
    """Tests for partial failure handling."""

    def test_quota_exhaustion_stops_remaining_work(self, make_processor, make_message, fake_db):
        messages = [
            make_message("m1", "noreply@indeed.com", "Candidature envoyée"),
            make_message("m2", "noreply@indeed.com", "Candidature envoyée chez Globex"),
            make_message("m3", "newsletter@notion.so", "Digest"),
        ]
        processor = make_processor(messages, responses=(ACME_SENT, RateLimitError("429", retry_delay=None)))

        summary = processor.sync("user-1")

        assert summary.quota_exhausted is True
        assert summary.processed == 1
        assert summary.ai_calls == 1
        assert summary.skipped == 1
        # m2 stays unrecorded so the next run picks it up
        assert set(fake_db.email_records) == {"m1", "m3"}

    def test_one_failing_email_does_not_stop_the_batch(self, make_processor, make_message, handler, monkeypatch):
        messages = [
            make_message("m1", "noreply@indeed.com", "Candidature envoyée"),
            make_message("m2", "noreply@indeed.com", "Candidature envoyée chez Globex"),
        ]
        processor = make_processor(messages)
        original = handler.reconcile

        def flaky(user_id, email, result):
            if email.message_id == "m1":
                raise RuntimeError("storage hiccup")
            return original(user_id, email, result)

        monkeypatch.setattr(handler, "reconcile", flaky)

        summary = processor.sync("user-1")

        assert summary.failed == 1
        assert summary.processed == 1
        assert summary.ai_calls == 2

    def test_failed_noise_write_is_not_also_skipped(self, make_processor, make_message, handler, monkeypatch):
        messages = [
            make_message("m1", "newsletter.so", "Digest"),
            make_message("m2", "billing.io", "Your invoice"),
        ]
        processor = make_processor(messages)
        original = handler.suppress

        def flaky(user_id, email):
            if email.message_id == "m1":
                raise RuntimeError("storage hiccup")
            return original(user_id, email)

        monkeypatch.setattr(handler, "suppress", flaky)

        summary = processor.sync("user-1")

        assert summary.failed == 1
        assert summary.skipped == 1
        assert summary.processed + summary.skipped + summary.failed == summary.total

    def test_mailbox_failure_propagates(self, make_processor, make_mailbox):
        processor = make_processor(mailbox=make_mailbox(error=MailboxError("token revoked")))

        with pytest.raises(MailboxError):
            processor.sync("user-1")
        assert processor.gateway.transport.prompts == []

    def test_guard_released_after_failure(self, make_processor, make_mailbox):
        guard = SingleFlight("test-sync")
        processor = make_processor(mailbox=make_mailbox(error=MailboxError("down")), guard=guard)

        with pytest.raises(MailboxError):
            processor.sync("user-1")

        assert guard.running is False


class TestMailboxLifecycle:
    """Tests for closing the mailbox connection."""

    def test_close_releases_owned_mailbox(self, fake_db, prefilter, handler, make_gateway):
        processor = SyncProcessor(
            db=fake_db,
            gateway=make_gateway(ACME_SENT),
            handler=handler,
            prefilter=prefilter,
            guard=SingleFlight("test-sync"),
        )

        try:
            # No linked account, the run fails before any message is read
            with pytest.raises(MailboxError):
                processor.sync("user-1")
        finally:
            processor.close()

        assert processor.mailbox._client.is_closed

    def test_close_leaves_injected_mailbox_alone(self, make_processor, make_mailbox):
        mailbox = make_mailbox([])
        mailbox.close = MagicMock()
        processor = make_processor(mailbox=mailbox)

        processor.sync("user-1")
        processor.close()

        mailbox.close.assert_not_called()


class TestSyncValidation:
    """Tests for input validation."""

    @pytest.mark.parametrize("user_id", ["", "   ", None])
    def test_user_id_required(self, make_processor, user_id):
        with pytest.raises(InvalidSyncRequestError):
            make_processor([]).sync(user_id)

    @pytest.mark.parametrize("days", [0, -1, True, "3", 2.5])
    def test_window_must_be_positive_int(self, make_processor, make_mailbox, days):
        mailbox = make_mailbox([])
        with pytest.raises(InvalidSyncRequestError):
            make_processor(mailbox=mailbox).sync("user-1", days)
        assert mailbox.calls == []


class TestSingleFlight:
    """Tests for the single-flight guard."""

    def test_concurrent_sync_is_rejected(self, make_processor, make_mailbox, linkedin_confirmation):
        guard = SingleFlight("test-sync")
        conflicts = []
        processor = None

        def reenter():
            try:
                processor.sync("user-2")
            except SyncConflictError as e:
                conflicts.append(e)

        mailbox = make_mailbox([linkedin_confirmation], on_fetch=reenter)
        processor = make_processor(mailbox=mailbox, guard=guard)

        summary = processor.sync("user-1")

        assert len(conflicts) == 1
        # The in-flight run is unaffected
        assert summary.processed == 1
        assert mailbox.calls == [("user-1", 3, 50)]
        assert guard.running is False

    def test_hold_raises_when_held(self):
        guard = SingleFlight("test")
        with guard.hold():
            assert guard.running is True
            with pytest.raises(SyncConflictError):
                with guard.hold():
                    pass
        assert guard.running is False
