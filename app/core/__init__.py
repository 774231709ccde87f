"""
Core Application - Infrastructure & Base Classes

Generic, reusable building blocks shared by the domain apps. Business logic
does not belong here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - MetadataMixin: Flexible JSON metadata storage

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - NotFoundError: Resource not found
    - PermissionDeniedError: Authorization failures
    - ConflictError: State conflicts (duplicates, concurrent modification)
    - ExternalServiceError: Cache/broker/provider failures

Request infrastructure:
    - core.idempotency.IdempotencyCache: Idempotency-Key response cache
    - core.decorators.idempotent_request: View decorator using the cache
    - core.permissions.HasCapabilities: Wildcard capability checks

Note:
    Django models, model mixins and DRF-dependent modules are NOT imported
    here to avoid AppRegistryNotReady errors. Import them directly from
    their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
]
