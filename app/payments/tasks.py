"""
Celery tasks for webhook processing.

This module provides async tasks for:
- Processing a recorded webhook event
- Re-queuing events whose retry time has come (celery-beat, every minute)

Usage:
    from payments.tasks import process_webhook_event

    # Queue a recorded webhook for async processing
    process_webhook_event.delay(str(webhook_event_id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import DatabaseError

from core.exceptions import BaseApplicationError
from payments.exceptions import ConcurrentSettlementConflict, LockAcquisitionError
from payments.locks import DistributedLock
from payments.models import WebhookEvent
from payments.webhooks.store import WebhookEventStore

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_WEBHOOK_LOCK_TTL = 120
RETRY_SWEEP_BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(bind=True, acks_late=True)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a recorded webhook event.

    This task:
    1. Loads the WebhookEvent by ID and skips it if already processed
    2. Takes a non-blocking lock on the event
    3. Dispatches to the registered handler
    4. Marks the event processed, closed as failed (permanent error) or
       scheduled for retry (transient error)

    Retries are driven by WebhookEvent.next_retry_at and the
    retry_due_webhooks sweep, not by Celery's own retry mechanism.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status
    """
    # Import here to avoid circular imports
    from payments.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)
    event_id_str = str(webhook_event_id)

    webhook_event = WebhookEvent.objects.filter(id=webhook_event_id).first()
    if webhook_event is None:
        logger.error("WebhookEvent not found", extra={"webhook_event_id": event_id_str})
        return {"status": "not_found", "webhook_event_id": event_id_str}

    if webhook_event.processed:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={"webhook_event_id": event_id_str, "event_id": webhook_event.event_id},
        )
        return {"status": "already_processed", "webhook_event_id": event_id_str}

    lock = DistributedLock(
        f"webhook:{event_id_str}",
        ttl=getattr(settings, "WEBHOOK_LOCK_TTL", DEFAULT_WEBHOOK_LOCK_TTL),
        blocking=False,
    )

    try:
        try:
            lock.acquire()
        except LockAcquisitionError:
            raise ConcurrentSettlementConflict(
                "Webhook event is already being processed",
                details={"webhook_event_id": event_id_str},
            )

        try:
            # Another worker may have finished while we waited for the lock
            webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
            if webhook_event.processed:
                return {"status": "already_processed", "webhook_event_id": event_id_str}

            logger.info(
                f"Dispatching webhook: {webhook_event.event_type}",
                extra={
                    "webhook_event_id": event_id_str,
                    "provider": webhook_event.provider,
                    "event_id": webhook_event.event_id,
                    "attempts": webhook_event.attempts,
                },
            )
            result = dispatch_webhook(webhook_event)
        finally:
            lock.release()

    except BaseApplicationError as e:
        if not e.is_retryable:
            WebhookEventStore.mark_processed(webhook_event_id, success=False, error=str(e))
            return {"status": "failed", "webhook_event_id": event_id_str, "error": str(e)}
        next_retry_at = WebhookEventStore.schedule_retry(webhook_event_id, str(e))
        return _retry_response(event_id_str, next_retry_at, str(e))

    except DatabaseError as e:
        error_msg = f"{type(e).__name__}: {e}"
        logger.warning(
            "Database error while processing webhook",
            extra={"webhook_event_id": event_id_str, "error": error_msg},
        )
        next_retry_at = WebhookEventStore.schedule_retry(webhook_event_id, error_msg)
        return _retry_response(event_id_str, next_retry_at, error_msg)

    except Exception as e:
        # Unexpected exception - keep the event retryable and surface the bug
        error_msg = f"{type(e).__name__}: {e}"
        WebhookEventStore.schedule_retry(webhook_event_id, error_msg)
        logger.exception(
            "Webhook processing failed with exception",
            extra={"webhook_event_id": event_id_str, "error": error_msg},
        )
        raise

    if result.success:
        WebhookEventStore.mark_processed(webhook_event_id, success=True)
        logger.info(
            "Webhook processed successfully",
            extra={"webhook_event_id": event_id_str, "event_id": webhook_event.event_id},
        )
        return {"status": "processed", "webhook_event_id": event_id_str}

    error_msg = result.error or "Handler returned failure"
    WebhookEventStore.mark_processed(webhook_event_id, success=False, error=error_msg)
    logger.warning(
        f"Webhook handler failed: {error_msg}",
        extra={
            "webhook_event_id": event_id_str,
            "event_id": webhook_event.event_id,
            "error_code": result.error_code,
        },
    )
    return {
        "status": "handler_failed",
        "webhook_event_id": event_id_str,
        "error": error_msg,
        "error_code": result.error_code,
    }


def _retry_response(event_id_str: str, next_retry_at, error: str) -> dict:
    return {
        "status": "retry_scheduled" if next_retry_at else "retries_exhausted",
        "webhook_event_id": event_id_str,
        "next_retry_at": next_retry_at.isoformat() if next_retry_at else None,
        "error": error,
    }


@shared_task
def retry_due_webhooks() -> dict:
    """
    Periodic task to re-queue webhook events whose retry time has passed.

    Scheduled via celery-beat every minute (see CELERY_BEAT_SCHEDULE).

    Returns:
        Dict with count of webhooks queued for retry
    """
    due = WebhookEventStore.due_for_retry(limit=RETRY_SWEEP_BATCH_SIZE)

    queued_count = 0
    for webhook in due:
        try:
            process_webhook_event.delay(str(webhook.id))
            queued_count += 1
            logger.info(
                "Queued webhook for retry",
                extra={
                    "webhook_event_id": str(webhook.id),
                    "event_id": webhook.event_id,
                    "attempts": webhook.attempts,
                },
            )
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    if queued_count:
        logger.info(
            f"Queued {queued_count} webhooks for retry",
            extra={"queued_count": queued_count},
        )

    return {"queued_count": queued_count}
