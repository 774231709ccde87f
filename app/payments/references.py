"""
Reference generators for orders, transactions, withdrawals and refunds.

Format:
    QKY-{PREFIX}-{epoch milliseconds}-{4 upper-case hex chars}
    e.g. QKY-ORD-1767790000000-A1B2

Settlement references use ``STL-<32 upper-case hex chars>`` and reversal
references ``REV-{order reference}-{epoch milliseconds}-{4 hex chars}``; the
suffix keeps two reversals of one order in the same millisecond distinct.
A failed withdrawal is credited back under ``{withdrawal reference}-REV``.
"""

from __future__ import annotations

import time
import uuid

REFERENCE_PREFIXES = ("ORD", "TXN", "WDR", "REF")


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_reference(prefix: str) -> str:
    """
    Generate a QKY reference.

    Args:
        prefix: One of ORD, TXN, WDR, REF

    Raises:
        ValueError: For an unknown prefix
    """
    if prefix not in REFERENCE_PREFIXES:
        raise ValueError(f"Unknown reference prefix: {prefix!r}")
    suffix = uuid.uuid4().hex[:4].upper()
    return f"QKY-{prefix}-{_epoch_ms()}-{suffix}"


def order_reference() -> str:
    return generate_reference("ORD")


def refund_reference() -> str:
    return generate_reference("REF")


def withdrawal_reference() -> str:
    return generate_reference("WDR")


def settlement_reference() -> str:
    return f"STL-{uuid.uuid4().hex.upper()}"


def reversal_reference(order_ref: str) -> str:
    suffix = uuid.uuid4().hex[:4].upper()
    return f"REV-{order_ref}-{_epoch_ms()}-{suffix}"


def payout_reversal_reference(withdrawal_ref: str) -> str:
    return f"{withdrawal_ref}-REV"
