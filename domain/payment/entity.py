"""
Payment domain entities - canonical status, order view and lifecycle rules.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.payment.exceptions import StateConflictError


class PaymentStatus(str, Enum):
    """Canonical payment status, derived from the gateway charge state."""
    INITIALIZED = "initialized"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    ERROR = "error"
    CANCELLED = "cancelled"
    PENDING_EXTERNAL_SYSTEM = "pending_external_system"


# Forward moves allowed by the gateway lifecycle. Same-state moves, moves into
# ERROR and moves out of ERROR (operator retry / re-poll) are handled in
# can_transition.
_FORWARD = {
    PaymentStatus.INITIALIZED: {
        PaymentStatus.PENDING_EXTERNAL_SYSTEM,
        PaymentStatus.AUTHORIZED,
        PaymentStatus.CAPTURED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PENDING_EXTERNAL_SYSTEM: {
        PaymentStatus.AUTHORIZED,
        PaymentStatus.CAPTURED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.AUTHORIZED: {
        PaymentStatus.CAPTURED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.CAPTURED: set(),
    PaymentStatus.CANCELLED: set(),
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    if current == target:
        return True
    if target == PaymentStatus.ERROR or current == PaymentStatus.ERROR:
        return True
    return target in _FORWARD.get(current, set())


def ensure_transition(
    current: PaymentStatus,
    target: PaymentStatus,
    *,
    order_number: str | None = None,
) -> None:
    """Raise StateConflictError unless current -> target is a legal move."""
    if not can_transition(current, target):
        raise StateConflictError(
            f"Payment cannot move from {current.value} to {target.value}",
            current=current.value,
            requested=target.value,
            order_number=order_number,
        )


@dataclass
class Customer:
    email: Optional[str] = None
    reference: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass
class TransactionInfo:
    """Last known transaction data recorded on the order."""
    transaction_id: Optional[str] = None
    amount_authorized: Optional[Decimal] = None
    payment_status: Optional[PaymentStatus] = None
    amount_refunded: Decimal = field(default_factory=lambda: Decimal("0"))


@dataclass
class Order:
    """
    Read-mostly view of an order owned by the order subsystem.

    The payment core reads these fields and writes metadata only through
    an OrderStore.
    """

    order_number: str
    total_with_tax: Decimal
    currency: str
    customer: Customer = field(default_factory=Customer)
    metadata: dict[str, str] = field(default_factory=dict)
    transaction: TransactionInfo = field(default_factory=TransactionInfo)

    @property
    def handle(self) -> str:
        """Gateway handle for the charge belonging to this order."""
        return self.order_number

    @property
    def last_status(self) -> PaymentStatus:
        return self.transaction.payment_status or PaymentStatus.INITIALIZED
