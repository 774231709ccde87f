"""
Webhook event handlers for Paystack and Monnify events.

This module provides a handler registry and implementations for
processing provider webhook events.

The handler registry allows:
- Clean separation between event routing and handling
- Easy extension for new event types
- Centralized error handling

Error contract:
    Handlers return ServiceResult.failure for permanent problems (unknown
    order, amount mismatch, wallet closed); the event is closed as failed.
    Transient errors (lock contention, database outages) propagate so the
    processing task can schedule a retry.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    # Register a custom handler
    @register_handler("transfer.success")
    def handle_transfer_success(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    # Dispatch an event to its handler
    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from core.exceptions import BaseApplicationError
from core.services import ServiceResult
from payments.adapters import get_adapter
from payments.adapters.monnify import FAILED_TRANSACTION, SUCCESSFUL_TRANSACTION
from payments.adapters.paystack import (
    CHARGE_SUCCESS,
    REFUND_FAILED,
    REFUND_PROCESSED,
    TRANSFER_FAILED,
    TRANSFER_REVERSED,
)
from payments.exceptions import PayoutError, UnknownPaymentStatus
from payments.services import PayoutService, RefundService, SettlementService

if TYPE_CHECKING:
    from payments.models import WebhookEvent


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("charge.success")
        def handle_charge_success(webhook_event: WebhookEvent) -> ServiceResult:
            ...

    Args:
        event_type: The provider event type (e.g., "charge.success")

    Returns:
        Decorator function that registers the handler
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Looks up the handler by event type and calls it. If no handler
    is registered, logs and returns success so unknown events are
    acknowledged and closed.

    Args:
        webhook_event: The WebhookEvent to process

    Returns:
        ServiceResult from the handler, or success if no handler
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"provider": webhook_event.provider, "event_id": webhook_event.event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"provider": webhook_event.provider, "event_id": webhook_event.event_id},
    )

    return handler(webhook_event)


def _permanent_failure(webhook_event: WebhookEvent, error: BaseApplicationError) -> ServiceResult:
    """Convert a non-retryable domain error to a failed result; re-raise transient ones."""
    if error.is_retryable:
        raise error
    logger.warning(
        f"{webhook_event.event_type}: {error.message}",
        extra={
            "provider": webhook_event.provider,
            "event_id": webhook_event.event_id,
            "reference": webhook_event.reference,
            "error_code": error.error_code,
        },
    )
    return ServiceResult.from_exception(error)


# =============================================================================
# Charge Handlers (settlement)
# =============================================================================


@register_handler(CHARGE_SUCCESS)
@register_handler(SUCCESSFUL_TRANSACTION)
@register_handler(FAILED_TRANSACTION)
def handle_charge(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Settle the order a charge webhook pays for.

    Re-parses the stored payload with the provider adapter and hands the
    outcome to SettlementService. FAILED and PENDING outcomes are applied
    by the settlement service as well. An unrecognized provider status is
    held as pending and returned as an UNKNOWN_PAYMENT_STATUS failure so
    the event stays on record for manual review.

    Args:
        webhook_event: The WebhookEvent containing the event data

    Returns:
        ServiceResult with the SettlementResult on success
    """
    try:
        webhook = get_adapter(webhook_event.provider).parse(webhook_event.payload)
        outcome = webhook.outcome
        if outcome is None:
            return ServiceResult.failure(
                f"{webhook_event.event_type} carries no payment outcome",
                error_code="INVALID_WEBHOOK_PAYLOAD",
            )

        logger.info(
            f"Processing {webhook_event.event_type}",
            extra={
                "provider": webhook_event.provider,
                "event_id": webhook_event.event_id,
                "reference": outcome.reference,
                "status": outcome.status,
                "amount_paid": outcome.amount_paid,
            },
        )

        order = SettlementService.resolve_order(outcome.reference)
        result = SettlementService.settle(order.id, outcome)
        if outcome.is_unrecognized:
            # Held as pending by settle(); the failed event is the review record
            error = UnknownPaymentStatus(
                outcome.provider_status,
                details={"order_id": str(order.id), "reference": outcome.reference},
            )
            return _permanent_failure(webhook_event, error)
    except BaseApplicationError as e:
        return _permanent_failure(webhook_event, e)

    return ServiceResult.success(result)


# =============================================================================
# Refund Handlers (external refunds)
# =============================================================================


@register_handler(REFUND_PROCESSED)
@register_handler(REFUND_FAILED)
def handle_refund_update(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Complete or fail an external refund from Paystack's report.

    Only refunds issued to the original payment method or a bank account
    wait for this webhook; wallet refunds complete synchronously. A refund
    webhook that matches no open refund is acknowledged (it may have been
    issued from the provider dashboard).

    Args:
        webhook_event: The WebhookEvent containing the event data

    Returns:
        ServiceResult with the updated Refund, or None when nothing matched
    """
    data = webhook_event.payload.get("data") or {}
    refund_reference = str(data.get("refund_reference") or data.get("merchant_note") or "")

    try:
        refund = RefundService.find_open_external_refund(
            webhook_event.reference,
            refund_reference,
        )
        if refund is None:
            logger.warning(
                "No open refund matches refund webhook (may be external)",
                extra={
                    "event_id": webhook_event.event_id,
                    "reference": webhook_event.reference,
                    "refund_reference": refund_reference,
                },
            )
            return ServiceResult.success(None)

        success = webhook_event.event_type == REFUND_PROCESSED
        refund = RefundService.complete_external_refund(
            refund.id,
            success=success,
            provider_metadata={
                "event_id": webhook_event.event_id,
                "provider_refund_id": data.get("id"),
                "status": data.get("status"),
                "amount": data.get("amount"),
            },
            failure_reason="" if success else str(data.get("status") or "failed"),
        )
    except BaseApplicationError as e:
        return _permanent_failure(webhook_event, e)

    return ServiceResult.success(refund)


# =============================================================================
# Transfer Handlers (wallet withdrawals)
# =============================================================================


@register_handler(TRANSFER_FAILED)
@register_handler(TRANSFER_REVERSED)
def handle_transfer_failure(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Credit back a wallet withdrawal whose bank transfer failed.

    A transfer webhook that matches no withdrawal is acknowledged (it may
    have been initiated from the provider dashboard).

    Returns:
        ServiceResult with the reversal Transaction, or None when nothing matched
    """
    data = webhook_event.payload.get("data") or {}
    reason = str(data.get("reason") or data.get("status") or webhook_event.event_type)

    try:
        reversal = PayoutService.fail_payout(webhook_event.reference, reason=reason)
    except PayoutError:
        logger.warning(
            "No withdrawal matches transfer webhook (may be external)",
            extra={"event_id": webhook_event.event_id, "reference": webhook_event.reference},
        )
        return ServiceResult.success(None)
    except BaseApplicationError as e:
        return _permanent_failure(webhook_event, e)

    return ServiceResult.success(reversal)
