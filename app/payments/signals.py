"""
Django signals emitted by the payments app.

Receivers are notification and payout collaborators outside this app.
Signals are sent after the surrounding transaction commits and with
send_robust, so a failing receiver never rolls back or blocks a settlement.

Signals:
    settlement_completed(settlement, order, mode)
        A paid order was settled (wallet credited or split recorded)
    settlement_failed(order, payment, reason)
        A payment attempt failed and no settlement was created
    refund_requested(refund, order)
        An external refund (original payment / bank account) needs payout
    refund_completed(refund, order)
        A refund reached the completed state
    payout_requested(transaction, destination)
        A wallet withdrawal was debited and needs a bank transfer
    payout_failed(transaction, reversal, reason)
        A withdrawal transfer failed and the wallet was credited back

Usage:
    from django.dispatch import receiver
    from payments.signals import settlement_completed

    @receiver(settlement_completed)
    def notify_merchant(sender, settlement, order, mode, **kwargs):
        ...
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)


settlement_completed = Signal()
settlement_failed = Signal()
refund_requested = Signal()
refund_completed = Signal()
payout_requested = Signal()
payout_failed = Signal()


def send_on_commit(signal: Signal, sender: type, **kwargs) -> None:
    """
    Send a signal with send_robust once the current transaction commits.

    Receiver errors are logged and discarded. Outside a transaction the
    signal is sent immediately.

    Args:
        signal: Signal to send
        sender: Model class sending the signal
        **kwargs: Signal arguments
    """

    def _send() -> None:
        for receiver, response in signal.send_robust(sender=sender, **kwargs):
            if isinstance(response, Exception):
                logger.error(
                    "Payment signal receiver failed",
                    extra={
                        "receiver": getattr(receiver, "__qualname__", repr(receiver)),
                        "sender": sender.__name__,
                        "error": str(response),
                    },
                )

    transaction.on_commit(_send)


def register_signals():
    """
    Register payment signal receivers.

    Called from apps.py when app is ready. The payments app only emits
    signals; receivers belong to the collaborating apps.
    """
    logger.debug("Payment signals registered")
