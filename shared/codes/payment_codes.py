"""
Payment specific codes and gateway charge state mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Input errors
    VALIDATION_ERROR = 60010

    # Gateway/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    TRANSPORT_ERROR = 60001
    PROTOCOL_ERROR = 60005
    DECODE_ERROR = 60006

    # Webhook errors
    SIGNATURE_ERROR = 60002
    WEBHOOK_PAYLOAD_ERROR = 60007
    WEBHOOK_CONFIG_ERROR = 60008

    # Lifecycle errors
    STATE_CONFLICT = 60020


# Reepay charge.state -> canonical PaymentStatus value.
# Anything not listed falls back to "initialized".
CHARGE_STATE_TO_STATUS = {
    "authorized": "authorized",
    "settled": "captured",
    "failed": "error",
    "cancelled": "cancelled",
    "pending": "pending_external_system",
}

# Webhook event types that identify the order they belong to via the event id.
ORDER_RESOLVING_EVENT_TYPES = frozenset({"invoice_authorized", "invoice_settled"})
