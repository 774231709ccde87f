"""
WebhookEvent model for provider webhook tracking.

Stores every webhook received from a payment provider for idempotent
processing and audit trails. The unique (provider, event_id) constraint
ensures duplicate deliveries are detected before any side effect runs.

Usage:
    from payments.webhooks.store import WebhookEventStore

    result = WebhookEventStore.record_if_new(
        provider="PAYSTACK",
        event_id="charge.success:302961",
        event_type="charge.success",
        reference="QKY-ORD-1767790000000-A1B2",
        payload=payload,
    )
    if not result.is_new:
        # Duplicate delivery - acknowledged without reprocessing
        ...
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import Provider


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks provider webhook events for idempotent processing.

    Stores the full webhook payload and processing status to:
    1. Prevent duplicate handling (idempotency)
    2. Enable retry logic for transiently failed events
    3. Provide audit trail for debugging

    Processing Flow:
        1. Webhook arrives, verify provider signature
        2. Insert WebhookEvent keyed by (provider, event_id)
        3. If it already existed and is processed -> return 200 (duplicate)
        4. Queue processing task
        5. Route to handler by event_type
        6. Mark processed, or record error and schedule a retry

    Fields:
        provider: PAYSTACK or MONNIFY
        event_id: Provider event identity, unique per provider
        event_type: Provider event type (e.g., 'charge.success')
        reference: Business reference correlated with orders/refunds
        payload: Full JSON payload from the provider
        processed: Whether handling finished successfully
        error: Error details from the last failed attempt
        attempts: Number of processing attempts
        next_retry_at: When the retry sweep may pick the event up
        processed_at: When handling finished successfully

    Note:
        Rows are never deleted. reference is not a foreign key because
        providers may reference entities that do not exist yet.
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        choices=Provider.choices,
        help_text="Provider that sent the webhook",
    )
    event_id = models.CharField(
        max_length=255,
        help_text="Provider event identity - unique per provider for idempotency",
    )
    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Provider event type (e.g., 'charge.success')",
    )
    reference = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        help_text="Business reference carried by the payload",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        help_text="Full webhook payload from the provider (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    processed = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the event was handled successfully",
    )
    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    # ==========================================================================
    # Error Handling
    # ==========================================================================

    error = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )
    attempts = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )
    next_retry_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Earliest time the retry sweep may reprocess the event",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="unique_webhook_event_per_provider",
            ),
        ]
        indexes = [
            models.Index(
                fields=["next_retry_at"],
                condition=Q(processed=False),
                name="webhook_retry_due_idx",
            ),
            models.Index(fields=["event_type", "created_at"]),
        ]

    def __str__(self) -> str:
        """Return string representation with provider, event ID and type."""
        return f"WebhookEvent({self.provider}, {self.event_id}, {self.event_type})"

    @property
    def has_failed(self) -> bool:
        """Check if the last attempt recorded an error."""
        return not self.processed and bool(self.error)
