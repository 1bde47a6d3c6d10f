"""Gateway charge state -> canonical PaymentStatus."""
from __future__ import annotations

from typing import Optional

from domain.payment.entity import PaymentStatus
from shared.codes.payment_codes import CHARGE_STATE_TO_STATUS


def map_status(state: Optional[str]) -> PaymentStatus:
    """Map a Reepay charge state to a PaymentStatus.

    Total: unknown, empty or missing states map to INITIALIZED.
    """
    return PaymentStatus(CHARGE_STATE_TO_STATUS.get(state or "", PaymentStatus.INITIALIZED.value))
