"""
Capability-set permission checks for API views.

A capability is a dotted string such as ``payments.add_refund``. Grants may
use wildcards:

    "*"               matches every capability
    "payments.*"      matches any capability under ``payments.``
    "payments.add_refund"  matches exactly

Sources of granted capabilities for a request:
    - Django model permissions (``user.get_all_permissions()``)
    - ``*`` for superusers
    - A ``permissions`` claim on ``request.auth`` when the authenticator
      supplies a mapping (token-based callers)

Usage:
    from core.permissions import HasCapabilities

    class RefundCreateView(APIView):
        permission_classes = [IsAuthenticated, HasCapabilities]
        required_capabilities = ["payments.add_refund"]
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

if TYPE_CHECKING:
    from collections.abc import Iterable

    from rest_framework.request import Request
    from rest_framework.views import APIView

WILDCARD = "*"


def has_capability(granted: Iterable[str], required: str) -> bool:
    """
    Check whether any granted capability covers the required one.

    Args:
        granted: Capabilities held by the caller
        required: Capability the operation needs

    Returns:
        True if a grant matches exactly, is ``*``, or is a ``prefix.*``
        whose prefix starts the required capability.

    Example:
        >>> has_capability(["payments.*"], "payments.add_refund")
        True
        >>> has_capability(["payments.view_wallet"], "payments.add_refund")
        False
    """
    for grant in granted:
        if grant == WILDCARD or grant == required:
            return True
        if grant.endswith(".*") and required.startswith(grant[:-1]):
            return True
    return False


def has_capabilities(granted: Iterable[str], required: Iterable[str]) -> bool:
    """Check that every required capability is covered."""
    granted = list(granted)
    return all(has_capability(granted, capability) for capability in required)


def get_capabilities(request: Request) -> set[str]:
    """Collect the capabilities granted to the request's caller."""
    user = request.user
    if not user or not user.is_authenticated:
        return set()

    granted: set[str] = set(user.get_all_permissions())
    if user.is_superuser:
        granted.add(WILDCARD)

    auth = getattr(request, "auth", None)
    if isinstance(auth, dict):
        granted.update(auth.get("permissions") or [])

    return granted


class HasCapabilities(permissions.BasePermission):
    """
    Allows access only when the caller holds every capability listed on the
    view's ``required_capabilities`` attribute.

    Views without the attribute are allowed through; pair with
    IsAuthenticated for endpoints that need a signed-in caller.
    """

    message = "You do not have the required capabilities for this action."

    def has_permission(self, request: Request, view: APIView) -> bool:
        required = getattr(view, "required_capabilities", None) or []
        if not required:
            return True
        return has_capabilities(get_capabilities(request), required)
