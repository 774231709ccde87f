"""
Payment-specific exceptions for webhook, settlement and refund operations.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── InvalidSignature - Webhook signature missing or wrong (HTTP 401)
    ├── MalformedWebhook - Signed body is not a usable provider payload
    ├── OrderNotFound - Webhook/refund references no known order
    ├── PaymentMismatch - Paid amount or currency differs from the order
    ├── UnknownPaymentStatus - Provider status outside the known vocabulary
    ├── SettlementError - Settlement cannot proceed for the order
    ├── RefundError - Refund processing failures
    │   └── RefundNotAllowed - Order state or amount forbids the refund
    └── PayoutError - Wallet withdrawal failures

    LockAcquisitionError - Distributed lock not acquired (inherits ConflictError)
    └── ConcurrentSettlementConflict - Event already being processed
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Ledger errors (InsufficientFunds and friends) live in payments.ledger.exceptions.

Retry semantics:
    Every exception carries ``is_retryable``. The webhook task reschedules
    the event for retryable errors and closes it as failed otherwise.

Usage:
    from payments.exceptions import OrderNotFound, PaymentMismatch

    raise PaymentMismatch(
        "Amount paid is less than order total",
        details={"expected": 5000, "received": 4000},
    )
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError, ConflictError

# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.

    Example:
        try:
            SettlementService.settle(order.id, outcome)
        except PaymentError as e:
            logger.error(f"Settlement failed: {e}")
            return ServiceResult.failure(e.message, e.error_code)
    """

    default_error_code: str = "PAYMENT_ERROR"
    is_retryable: bool = False


class InvalidSignature(PaymentError):
    """
    Raised when a webhook signature is missing or does not match.

    The payload must not be parsed or acted on when this is raised.
    """

    default_error_code: str = "INVALID_SIGNATURE"
    http_status: int = 401


class MalformedWebhook(PaymentError):
    """
    Raised when a correctly signed body cannot be decoded.

    Use for non-JSON bodies or payloads missing the event type or
    reference the provider contract guarantees.
    """

    default_error_code: str = "MALFORMED_WEBHOOK"


class OrderNotFound(PaymentError):
    """
    Raised when no order or payment matches a reference.

    Example:
        payment = OrderPayment.objects.filter(payment_reference=ref).first()
        if not payment:
            raise OrderNotFound(
                f"No payment with reference {ref}",
                details={"reference": ref},
            )
    """

    default_error_code: str = "ORDER_NOT_FOUND"
    http_status: int = 404


class PaymentMismatch(PaymentError):
    """
    Raised when the provider-reported payment does not match the order.

    Use for:
    - Amount paid below the expected payment amount
    - Currency different from the order currency
    """

    default_error_code: str = "PAYMENT_MISMATCH"


class UnknownPaymentStatus(PaymentError):
    """
    Raised when a provider reports a payment status this app cannot decode.

    The payment is held as pending and the webhook event is closed with
    this error so the order can be reviewed by hand.
    """

    default_error_code: str = "UNKNOWN_PAYMENT_STATUS"

    def __init__(self, provider_status: str, details: dict | None = None):
        self.provider_status = provider_status
        super().__init__(
            f"Unknown payment status {provider_status!r}; held as pending for manual review",
            details={"provider_status": provider_status, **(details or {})},
        )


class SettlementError(PaymentError):
    """
    Raised when an order cannot be settled in its current state.

    Use for:
    - Order not awaiting payment (already shipped, cancelled, ...)
    - Payment attempt that is already successful for a different order
    """

    default_error_code: str = "SETTLEMENT_ERROR"


class RefundError(PaymentError):
    """
    Raised when refund processing fails.

    Example:
        raise RefundError(
            "Refund could not be recorded",
            details={"order_id": str(order.id)},
        )
    """

    default_error_code: str = "REFUND_ERROR"


class RefundNotAllowed(RefundError):
    """
    Raised when the order or amount does not permit a refund.

    Use for:
    - Order never reached a paid state
    - No settlement exists for the order
    - Amount exceeds the settled amount still refundable
    """

    default_error_code: str = "REFUND_NOT_ALLOWED"
    http_status: int = 422


class PayoutError(PaymentError):
    """
    Raised when a wallet withdrawal cannot be found or closed.

    Ledger errors from the withdrawal debit (InsufficientFunds,
    InactiveWallet) are raised unchanged.
    """

    default_error_code: str = "PAYOUT_ERROR"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    This exception indicates that another process holds the lock
    and it couldn't be acquired within the timeout period.

    Attributes:
        details: Contains key and timeout information

    Example:
        lock = DistributedLock("webhook:123", ttl=30, timeout=10)
        if not lock.acquire():
            raise LockAcquisitionError(
                "Failed to acquire lock 'webhook:123' within 10s",
                details={"key": "webhook:123", "timeout": 10}
            )

    Note:
        This exception inherits from ConflictError (HTTP 409) because
        it represents a resource contention conflict.
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"
    is_retryable: bool = True


class ConcurrentSettlementConflict(LockAcquisitionError):
    """
    Raised when another worker is already processing the same event.

    Treated as transient: the event is rescheduled rather than failed,
    and the provider never sees this error.
    """

    default_error_code: str = "CONCURRENT_SETTLEMENT"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    This exception wraps django-fsm's TransitionNotAllowed to provide
    our standard error format with additional context.

    Attributes:
        details: Contains current_state, target_state, and transition name

    Example:
        from django_fsm import TransitionNotAllowed

        try:
            order.ship()
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot ship order from '{order.status}' state",
                details={
                    "current_state": order.status,
                    "target_state": "shipped",
                    "transition": "ship",
                }
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"
    is_retryable: bool = False


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "InvalidSignature",
    "MalformedWebhook",
    "OrderNotFound",
    "PaymentMismatch",
    "UnknownPaymentStatus",
    "SettlementError",
    "RefundError",
    "RefundNotAllowed",
    "PayoutError",
    # Concurrency control
    "LockAcquisitionError",
    "ConcurrentSettlementConflict",
    "InvalidStateTransitionError",
]
