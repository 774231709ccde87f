"""
Custom decorators for API views.

idempotent_request replays the first response for a repeated
Idempotency-Key header.

Usage:
    from core.decorators import idempotent_request

    class RefundCreateView(APIView):
        @idempotent_request()
        def post(self, request, order_id):
            ...
"""

from __future__ import annotations

import functools
import logging
from typing import Callable

from rest_framework.response import Response

from core.exceptions import BaseApplicationError
from core.idempotency import IdempotencyCache

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


def idempotent_request(ttl: int | None = None, required: bool = False):
    """
    Replay the first response for repeated Idempotency-Key values.

    Wraps a DRF view method. Successful (2xx) responses are cached for
    ``ttl`` seconds; failed responses release the key so the client can
    retry. Requests without the header run normally unless ``required``.

    Args:
        ttl: Cache TTL in seconds (defaults to IDEMPOTENCY_TTL_SECONDS)
        required: Reject requests that omit the header with 400

    Returns:
        Decorator function
    """

    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(view, request, *args, **kwargs):
            key = request.headers.get(IDEMPOTENCY_HEADER)
            if not key:
                if required:
                    return Response(
                        {
                            "error": f"{IDEMPOTENCY_HEADER} header is required",
                            "error_code": "IDEMPOTENCY_KEY_REQUIRED",
                        },
                        status=400,
                    )
                return func(view, request, *args, **kwargs)

            user_id = getattr(request.user, "pk", None) or "anonymous"
            cache = IdempotencyCache(ttl=ttl)
            try:
                state = cache.begin(user_id, key)
            except BaseApplicationError as e:
                return Response(e.to_dict(), status=e.http_status)

            if state.replay is not None:
                response = Response(state.replay["body"], status=state.replay["status"])
                response["Idempotent-Replayed"] = "true"
                return response

            try:
                response = func(view, request, *args, **kwargs)
            except Exception:
                cache.release(user_id, key)
                raise

            if 200 <= response.status_code < 300:
                cache.complete(user_id, key, response.data, response.status_code)
            else:
                cache.release(user_id, key)
            return response

        return wrapper

    return decorator
