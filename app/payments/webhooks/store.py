"""
Webhook idempotency store.

Every inbound webhook is recorded exactly once per (provider, event_id).
The unique constraint on WebhookEvent is the duplicate guard: the insert
runs in a savepoint and an IntegrityError means the event was already
recorded, which is reported, not raised.

Usage:
    from payments.webhooks.store import WebhookEventStore

    result = WebhookEventStore.record_if_new(
        provider=webhook.provider,
        event_id=webhook.event_id,
        event_type=webhook.event_type,
        reference=webhook.reference,
        payload=webhook.payload,
    )
    ...
    WebhookEventStore.mark_processed(result.event_record_id, success=True)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from payments.models import WebhookEvent

if TYPE_CHECKING:
    import uuid
    from datetime import datetime

logger = logging.getLogger(__name__)

DEFAULT_RETRY_BASE_SECONDS = 30
DEFAULT_RETRY_MAX_SECONDS = 3600
DEFAULT_MAX_ATTEMPTS = 8


@dataclass(frozen=True)
class RecordResult:
    """
    Outcome of recording a webhook.

    Attributes:
        is_new: False when the (provider, event_id) pair was already stored
        event_record_id: Primary key of the stored WebhookEvent
        processed: Whether the stored event already finished processing
    """

    is_new: bool
    event_record_id: uuid.UUID
    processed: bool = False


def retry_delay(attempts: int) -> timedelta:
    """
    Exponential backoff for the next retry.

    Args:
        attempts: Attempts made so far (1 after the first failure)

    Returns:
        base * 2**(attempts - 1), capped at WEBHOOK_RETRY_MAX_SECONDS

    Example:
        # base 30s: 30s, 60s, 120s, 240s, ...
        retry_delay(3)  # timedelta(seconds=120)
    """
    base = getattr(settings, "WEBHOOK_RETRY_BASE_SECONDS", DEFAULT_RETRY_BASE_SECONDS)
    cap = getattr(settings, "WEBHOOK_RETRY_MAX_SECONDS", DEFAULT_RETRY_MAX_SECONDS)
    exponent = max(attempts - 1, 0)
    return timedelta(seconds=min(base * (2**exponent), cap))


def max_attempts() -> int:
    return getattr(settings, "WEBHOOK_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)


class WebhookEventStore:
    """
    Persistence for webhook events.

    All methods are static - no instance state is maintained.
    """

    @staticmethod
    def record_if_new(
        provider: str,
        event_id: str,
        event_type: str,
        reference: str,
        payload: dict[str, Any],
    ) -> RecordResult:
        """
        Insert a webhook event unless (provider, event_id) already exists.

        Args:
            provider: Provider enum value
            event_id: Provider event identity
            event_type: Provider event type
            reference: Business reference from the payload
            payload: Parsed webhook body

        Returns:
            RecordResult; is_new is False for duplicate deliveries
        """
        try:
            with transaction.atomic():
                event = WebhookEvent.objects.create(
                    provider=provider,
                    event_id=event_id,
                    event_type=event_type,
                    reference=reference or "",
                    payload=payload,
                )
        except IntegrityError:
            existing = WebhookEvent.objects.get(provider=provider, event_id=event_id)
            logger.info(
                "Duplicate webhook delivery",
                extra={
                    "provider": provider,
                    "event_id": event_id,
                    "webhook_event_id": str(existing.id),
                    "processed": existing.processed,
                },
            )
            return RecordResult(
                is_new=False,
                event_record_id=existing.id,
                processed=existing.processed,
            )

        logger.info(
            "Webhook event recorded",
            extra={
                "provider": provider,
                "event_id": event_id,
                "event_type": event_type,
                "webhook_event_id": str(event.id),
            },
        )
        return RecordResult(is_new=True, event_record_id=event.id)

    @staticmethod
    def mark_processed(
        event_record_id: uuid.UUID,
        success: bool,
        error: str | None = None,
    ) -> None:
        """
        Close out a processing attempt.

        Success sets processed and processed_at and clears the error. Failure
        leaves processed False, records the error and counts the attempt
        without scheduling a retry.

        Args:
            event_record_id: WebhookEvent primary key
            success: Whether handling succeeded
            error: Error detail for failed handling
        """
        now = timezone.now()
        if success:
            WebhookEvent.objects.filter(id=event_record_id).update(
                processed=True,
                processed_at=now,
                error=None,
                next_retry_at=None,
                attempts=F("attempts") + 1,
                updated_at=now,
            )
        else:
            WebhookEvent.objects.filter(id=event_record_id).update(
                processed=False,
                error=error or "Processing failed",
                next_retry_at=None,
                attempts=F("attempts") + 1,
                updated_at=now,
            )
            logger.warning(
                "Webhook event closed as failed",
                extra={"webhook_event_id": str(event_record_id), "error": error},
            )

    @staticmethod
    def schedule_retry(event_record_id: uuid.UUID, error: str) -> datetime | None:
        """
        Record a transient failure and schedule the next attempt.

        Args:
            event_record_id: WebhookEvent primary key
            error: Error detail for this attempt

        Returns:
            When the event becomes due again, or None once attempts are
            exhausted (the event stays unprocessed for manual review)
        """
        with transaction.atomic():
            event = WebhookEvent.objects.select_for_update().get(id=event_record_id)
            event.attempts += 1
            event.error = error
            if event.attempts >= max_attempts():
                event.next_retry_at = None
            else:
                event.next_retry_at = timezone.now() + retry_delay(event.attempts)
            event.save(update_fields=["attempts", "error", "next_retry_at", "updated_at"])

        if event.next_retry_at is None:
            logger.error(
                "Webhook event exhausted retries",
                extra={
                    "webhook_event_id": str(event.id),
                    "event_id": event.event_id,
                    "attempts": event.attempts,
                    "error": error,
                },
            )
        else:
            logger.warning(
                "Webhook event scheduled for retry",
                extra={
                    "webhook_event_id": str(event.id),
                    "attempts": event.attempts,
                    "next_retry_at": event.next_retry_at.isoformat(),
                },
            )
        return event.next_retry_at

    @staticmethod
    def due_for_retry(now: datetime | None = None, limit: int = 100) -> list[WebhookEvent]:
        """
        List unprocessed events whose retry time has passed.

        Args:
            now: Reference time (defaults to timezone.now())
            limit: Maximum number of events returned

        Returns:
            Events ordered by next_retry_at, oldest first
        """
        now = now or timezone.now()
        return list(
            WebhookEvent.objects.filter(
                processed=False,
                next_retry_at__isnull=False,
                next_retry_at__lte=now,
                attempts__lt=max_attempts(),
            ).order_by("next_retry_at")[:limit]
        )
