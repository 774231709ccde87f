"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the application
- Machine-readable error codes for client handling
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input validation failures
    ├── NotFoundError - Resource not found
    ├── PermissionDeniedError - Authorization failures
    ├── ConflictError - State conflicts (duplicates, concurrent modifications)
    └── ExternalServiceError - Cache/broker/provider failures

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("Refund amount must be positive", error_code="INVALID_AMOUNT")

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, metadata, etc.)
        is_retryable: Whether the failure is transient (callers may retry)

    Example:
        try:
            wallet = WalletLedger.get_wallet(user_id)
        except NotFoundError as e:
            logger.warning("Wallet lookup failed", extra={"error_code": e.error_code})
            return Response(e.to_dict(), status=404)
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and (when present) details keys
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails in the service layer.

    Example:
        raise ValidationError(
            "Partial refund requires an amount",
            error_code="REFUND_AMOUNT_REQUIRED",
            details={"refund_type": "partial"},
        )

    Note:
        For DRF serializer validation, use DRF's built-in validation.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Use for single-resource lookups where existence is expected, e.g. the
    order referenced by a refund request.
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when a caller lacks a capability for an operation.

    Example:
        if not has_capability(granted, "payments.add_refund"):
            raise PermissionDeniedError(
                "Access denied",
                error_code="CAPABILITY_REQUIRED",
                details={"required": ["payments.add_refund"]},
            )
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when operation conflicts with current resource state.

    Use for:
    - Duplicate entries (unique constraint violations)
    - Concurrent modification conflicts
    - Invalid state transitions

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external dependency fails.

    Use for cache or broker outages where continuing would be unsafe, and
    for unexpected responses from payment providers.

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 503
    is_retryable: bool = True
