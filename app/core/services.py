"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Pattern Comparison:
    - ServiceResult: Use for expected failures (unknown order, amount mismatch)
    - Exceptions: Use for failures the caller must handle (insufficient funds)
      and for unexpected failures (database errors, bugs)

Usage:
    from core.services import BaseService, ServiceResult

    class SettlementService(BaseService):
        @classmethod
        def settle(cls, order_id, outcome) -> SettlementResult:
            with cls.atomic():
                ...

    # In a webhook handler
    result = ServiceResult.failure("Order not found", error_code="ORDER_NOT_FOUND")
    if not result:
        logger.warning(result.error)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator

# Generic type for ServiceResult data
T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Provides consistent success/failure handling without exceptions.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        return ServiceResult.success(settlement_result)
        return ServiceResult.failure("Amount mismatch", "PAYMENT_MISMATCH")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        Args:
            data: The result data

        Returns:
            ServiceResult with success=True and data set
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)

        Returns:
            ServiceResult with success=False and error details
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own error_code; other exceptions fall
        back to the upper-cased class name.

        Args:
            exc: The caught exception
            error_code: Optional error code override

        Returns:
            ServiceResult with error details from exception
        """
        code = error_code or getattr(exc, "error_code", None)
        message = getattr(exc, "message", None) or str(exc)
        return cls(
            success=False,
            error=message,
            error_code=code or exc.__class__.__name__.upper(),
        )

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Design Notes:
        - Use @classmethod (no instance state)
        - Use ServiceResult for expected failures
        - Raise exceptions for failures callers must act on
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes
        transaction boundaries explicit in service code. Nested use
        creates savepoints.

        Example:
            with cls.atomic():
                settlement = Settlement.objects.create(...)
                WalletLedger.credit(...)
                # If the credit fails, the settlement is rolled back too
        """
        with transaction.atomic():
            yield
