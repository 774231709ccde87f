"""
Order state machine helper.

Wraps the django-fsm transitions on Order so that every applied transition
is saved together with an OrderStatusHistory row, and disallowed transitions
are a logged no-op instead of an exception.

Usage:
    from payments.services import OrderStateMachine
    from payments.state_machines import TriggeredBy

    applied = OrderStateMachine.apply(
        order,
        "ship",
        triggered_by=TriggeredBy.MERCHANT,
        user_id=merchant.id,
        notes="Handed to courier",
    )
    if not applied:
        # Order was not in PROCESSING; nothing changed
        ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction
from django_fsm import TransitionNotAllowed, can_proceed

from core.services import BaseService
from payments.exceptions import InvalidStateTransitionError
from payments.models import OrderStatusHistory
from payments.state_machines import OrderStatus, TriggeredBy

if TYPE_CHECKING:
    import uuid

    from payments.models import Order

logger = logging.getLogger(__name__)

# Transition method name -> target status
ORDER_TRANSITIONS: dict[str, str] = {
    "initiate_payment": OrderStatus.PAYMENT_INITIATED,
    "confirm": OrderStatus.CONFIRMED,
    "start_processing": OrderStatus.PROCESSING,
    "ship": OrderStatus.SHIPPED,
    "deliver": OrderStatus.DELIVERED,
    "complete": OrderStatus.COMPLETED,
    "cancel": OrderStatus.CANCELLED,
    "mark_returned": OrderStatus.RETURNED,
    "refund": OrderStatus.REFUNDED,
}

TRANSITION_FOR_TARGET: dict[str, str] = {
    target: name for name, target in ORDER_TRANSITIONS.items()
}


class OrderStateMachine(BaseService):
    """
    Applies Order transitions and records status history.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    def can_apply(cls, order: Order, transition_name: str) -> bool:
        """Check whether the named transition is allowed from the current status."""
        if transition_name not in ORDER_TRANSITIONS:
            return False
        return can_proceed(getattr(order, transition_name))

    @classmethod
    def apply(
        cls,
        order: Order,
        transition_name: str,
        triggered_by: str = TriggeredBy.SYSTEM,
        user_id: uuid.UUID | None = None,
        notes: str = "",
    ) -> bool:
        """
        Apply a transition, save the order and append a history row.

        Out-of-order transitions (e.g. SHIPPED -> PENDING) are rejected as a
        logged no-op.

        Args:
            order: Order to transition
            transition_name: Name of the transition method (see ORDER_TRANSITIONS)
            triggered_by: Actor kind recorded in history
            user_id: Acting user, when any
            notes: Free-form context recorded in history

        Returns:
            True if the transition was applied, False if it was rejected

        Raises:
            ValueError: If transition_name is not an Order transition
        """
        if transition_name not in ORDER_TRANSITIONS:
            raise ValueError(f"Unknown order transition: {transition_name!r}")

        previous_status = order.status
        try:
            getattr(order, transition_name)()
        except TransitionNotAllowed:
            logger.warning(
                "Order transition rejected",
                extra={
                    "order_id": str(order.id),
                    "current_status": previous_status,
                    "transition": transition_name,
                    "target_status": ORDER_TRANSITIONS[transition_name],
                },
            )
            return False

        with transaction.atomic():
            order.save()
            OrderStatusHistory.objects.create(
                order=order,
                status=order.status,
                previous_status=previous_status,
                triggered_by=triggered_by,
                triggered_by_user_id=user_id,
                notes=notes,
            )

        logger.info(
            "Order transitioned",
            extra={
                "order_id": str(order.id),
                "from_status": previous_status,
                "to_status": order.status,
                "triggered_by": triggered_by,
            },
        )
        return True

    @classmethod
    def transition_to(
        cls,
        order: Order,
        target_status: str,
        triggered_by: str = TriggeredBy.SYSTEM,
        user_id: uuid.UUID | None = None,
        notes: str = "",
    ) -> bool:
        """Apply whichever transition leads to target_status; False if none is allowed."""
        transition_name = TRANSITION_FOR_TARGET.get(target_status)
        if transition_name is None:
            logger.warning(
                "No transition leads to status",
                extra={"order_id": str(order.id), "target_status": target_status},
            )
            return False
        return cls.apply(order, transition_name, triggered_by, user_id, notes)

    @classmethod
    def apply_or_raise(
        cls,
        order: Order,
        transition_name: str,
        triggered_by: str = TriggeredBy.SYSTEM,
        user_id: uuid.UUID | None = None,
        notes: str = "",
    ) -> None:
        """
        Apply a transition, raising if it is not allowed.

        Raises:
            InvalidStateTransitionError: If the transition is rejected
        """
        if not cls.apply(order, transition_name, triggered_by, user_id, notes):
            raise InvalidStateTransitionError(
                f"Cannot {transition_name} order from '{order.status}' state",
                details={
                    "current_state": order.status,
                    "target_state": ORDER_TRANSITIONS[transition_name],
                    "transition": transition_name,
                },
            )
