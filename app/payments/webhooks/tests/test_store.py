"""
Tests for WebhookEventStore.

Tests cover:
- Recording new events and reporting duplicates
- Closing attempts as processed or failed
- Retry scheduling
"""

from datetime import timedelta

from django.utils import timezone
from freezegun import freeze_time

from payments.models import WebhookEvent
from payments.state_machines import Provider
from payments.tests.factories import WebhookEventFactory
from payments.webhooks.store import WebhookEventStore


def record(event_id="charge.success:1", provider=Provider.PAYSTACK, **kwargs):
    return WebhookEventStore.record_if_new(
        provider=provider,
        event_id=event_id,
        event_type=kwargs.get("event_type", "charge.success"),
        reference=kwargs.get("reference", "QKY-ORD-1"),
        payload=kwargs.get("payload", {"event": "charge.success"}),
    )


class TestRecordIfNew:
    """Tests for the duplicate guard."""

    def test_first_delivery_is_new(self, db):
        """The first delivery inserts a row."""
        result = record()

        assert result.is_new is True
        event = WebhookEvent.objects.get(id=result.event_record_id)
        assert event.processed is False
        assert event.attempts == 0
        assert event.reference == "QKY-ORD-1"

    def test_second_delivery_is_duplicate(self, db):
        """The same (provider, event_id) returns the original row."""
        first = record()
        second = record(payload={"changed": True})

        assert second.is_new is False
        assert second.event_record_id == first.event_record_id
        assert WebhookEvent.objects.count() == 1
        assert WebhookEvent.objects.get().payload == {"event": "charge.success"}

    def test_duplicate_reports_processed_flag(self, db):
        """Duplicates of finished events say so."""
        existing = WebhookEventFactory(event_id="charge.success:9", processed=True)

        result = record(event_id="charge.success:9")

        assert result.is_new is False
        assert result.event_record_id == existing.id
        assert result.processed is True

    def test_same_event_id_other_provider(self, db):
        """Event ids are unique per provider only."""
        record(event_id="shared")
        result = record(event_id="shared", provider=Provider.MONNIFY)

        assert result.is_new is True
        assert WebhookEvent.objects.count() == 2

    def test_missing_reference_stored_blank(self, db):
        """A None reference is stored as an empty string."""
        result = record(reference=None)

        assert WebhookEvent.objects.get(id=result.event_record_id).reference == ""


class TestMarkProcessed:
    """Tests for closing a processing attempt."""

    def test_success(self, db):
        """Success sets processed, clears the error and counts the attempt."""
        event = WebhookEventFactory(attempts=1, error="earlier failure")

        WebhookEventStore.mark_processed(event.id, success=True)

        event = WebhookEvent.objects.get(id=event.id)
        assert event.processed is True
        assert event.processed_at is not None
        assert event.error is None
        assert event.attempts == 2

    def test_failure(self, db):
        """Failure records the error and schedules nothing."""
        event = WebhookEventFactory(next_retry_at=timezone.now())

        WebhookEventStore.mark_processed(event.id, success=False, error="bad payload")

        event = WebhookEvent.objects.get(id=event.id)
        assert event.processed is False
        assert event.error == "bad payload"
        assert event.next_retry_at is None
        assert event.attempts == 1
        assert event.has_failed is True

    def test_failure_without_detail(self, db):
        """A failure with no message still records one."""
        event = WebhookEventFactory()

        WebhookEventStore.mark_processed(event.id, success=False)

        assert WebhookEvent.objects.get(id=event.id).error == "Processing failed"


class TestScheduleRetry:
    """Tests for schedule_retry."""

    @freeze_time("2026-03-01 09:00:00")
    def test_backoff_grows_with_attempts(self, db):
        """The second failure waits twice as long as the first."""
        event = WebhookEventFactory(attempts=1)

        due = WebhookEventStore.schedule_retry(event.id, "timeout")

        assert due == timezone.now() + timedelta(seconds=60)
        event = WebhookEvent.objects.get(id=event.id)
        assert event.attempts == 2
        assert event.error == "timeout"
        assert event.next_retry_at == due

    def test_exhausted(self, db, settings):
        """The final attempt returns None and leaves the event unprocessed."""
        settings.WEBHOOK_MAX_ATTEMPTS = 2
        event = WebhookEventFactory(attempts=1)

        assert WebhookEventStore.schedule_retry(event.id, "timeout") is None

        event = WebhookEvent.objects.get(id=event.id)
        assert event.next_retry_at is None
        assert event.processed is False
        assert event.attempts == 2
