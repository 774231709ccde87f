"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    MetadataMixin: Flexible JSON metadata storage

Usage:
    from core.models import BaseModel
    from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin

    class Settlement(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
        amount = models.PositiveBigIntegerField()

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Order, wallet and transaction identifiers appear in provider metadata
    and API URLs, so they must not reveal record counts or ordering.

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """
    Flexible JSON metadata storage.

    Fields:
        metadata: JSONField for arbitrary key-value data

    Usage:
        settlement.get_meta("overpaidAmount", default=0)
        transaction.get_meta("isSplit", default=False)
    """

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible key-value metadata storage",
    )

    class Meta:
        abstract = True

    def get_meta(self, key: str, default: Any = None) -> Any:
        """Get metadata value by key, or default when missing."""
        return (self.metadata or {}).get(key, default)
