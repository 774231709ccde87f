"""
Request-level idempotency cache.

Stores the response of a mutating API call under the caller's
``Idempotency-Key`` so a client retry replays the first response instead of
repeating the side effect. This is a convenience layer with a TTL; the
permanent duplicate guard for provider webhooks is the WebhookEvent unique
constraint, which does not depend on this cache.

Cache outages fail closed: if the cache cannot be read or reserved the
request is rejected rather than processed without protection.

Usage:
    from core.idempotency import IdempotencyCache

    cache = IdempotencyCache()
    state = cache.begin(user_id, key)
    if state.replay is not None:
        return Response(state.replay["body"], status=state.replay["status"])
    ...
    cache.complete(user_id, key, body, status_code)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.cache import caches

from core.exceptions import ConflictError, ExternalServiceError

if TYPE_CHECKING:
    from typing import Any


logger = logging.getLogger(__name__)

IN_PROGRESS = "__in_progress__"
DEFAULT_TTL_SECONDS = 86400


@dataclass
class IdempotencyState:
    """Outcome of reserving an idempotency key."""

    key: str
    replay: dict[str, Any] | None = None


class IdempotencyCache:
    """
    Keyed response cache with explicit TTL.

    Keys are namespaced per caller as ``idempotency:{user_id}:{key}`` so two
    users can never replay each other's responses.
    """

    key_prefix = "idempotency"

    def __init__(self, alias: str | None = None, ttl: int | None = None) -> None:
        self.alias = alias or getattr(settings, "IDEMPOTENCY_CACHE_ALIAS", "default")
        self.ttl = ttl or getattr(settings, "IDEMPOTENCY_TTL_SECONDS", DEFAULT_TTL_SECONDS)

    @property
    def cache(self):
        return caches[self.alias]

    def build_key(self, user_id: Any, key: str) -> str:
        return f"{self.key_prefix}:{user_id}:{key}"

    def begin(self, user_id: Any, key: str) -> IdempotencyState:
        """
        Reserve the key or return the stored response for a replay.

        Returns:
            IdempotencyState with ``replay`` set when a completed response
            exists for this key.

        Raises:
            ConflictError: If the same key is still being processed
            ExternalServiceError: If the cache is unavailable
        """
        cache_key = self.build_key(user_id, key)
        try:
            reserved = self.cache.add(cache_key, IN_PROGRESS, timeout=self.ttl)
            if reserved:
                return IdempotencyState(key=cache_key)
            stored = self.cache.get(cache_key)
        except Exception as e:
            logger.error(
                "Idempotency cache unavailable",
                extra={"cache_key": cache_key, "error": str(e)},
            )
            raise ExternalServiceError(
                "Idempotency check unavailable, retry later",
                error_code="IDEMPOTENCY_UNAVAILABLE",
            ) from e

        if stored is None:
            # Expired between add() and get(); treat as a fresh request
            return self.begin(user_id, key)

        if stored == IN_PROGRESS:
            raise ConflictError(
                "A request with this Idempotency-Key is already in progress",
                error_code="IDEMPOTENCY_IN_PROGRESS",
                details={"idempotency_key": key},
            )

        logger.info("Idempotency hit", extra={"cache_key": cache_key})
        return IdempotencyState(key=cache_key, replay=stored)

    def complete(self, user_id: Any, key: str, body: Any, status_code: int) -> None:
        """Store the final response for later replays."""
        cache_key = self.build_key(user_id, key)
        self.cache.set(
            cache_key,
            {"body": body, "status": status_code},
            timeout=self.ttl,
        )

    def release(self, user_id: Any, key: str) -> None:
        """Drop a reservation so the client may retry after a failure."""
        self.cache.delete(self.build_key(user_id, key))
