"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field

from domain.common.exceptions import BusinessException
from domain.payment.entity import PaymentStatus


class SessionCustomer(BaseModel):
    email: Optional[str] = None
    handle: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    generate_handle: bool = False


class SessionOrder(BaseModel):
    handle: str
    amount: int  # minor units
    currency: str
    customer: SessionCustomer


class ChargeSessionRequest(BaseModel):
    """Body of POST /v1/session/charge."""

    order: SessionOrder
    locale: Optional[str] = None
    settle: bool = False
    accept_url: Optional[str] = None
    cancel_url: Optional[str] = None
    payment_methods: Optional[list[str]] = None

    def to_payload(self) -> dict[str, Any]:
        # Gateway rejects explicit nulls for optional fields; omit them instead.
        return self.model_dump(mode="json", exclude_none=True)


class ChargeSession(BaseModel):
    id: str
    url: str


class Charge(BaseModel):
    """Gateway charge resource (subset of fields the core relies on)."""

    model_config = ConfigDict(extra="ignore")

    handle: str
    state: str
    amount: Optional[int] = None
    currency: Optional[str] = None
    transaction: Optional[str] = None
    authorized_amount: Optional[int] = None
    refunded_amount: Optional[int] = None


class Refund(BaseModel):
    """Gateway refund resource returned by POST /v1/refund."""

    model_config = ConfigDict(extra="ignore")

    id: str
    state: str
    invoice: str
    amount: int
    currency: Optional[str] = None


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    id: str
    event_type: str
    timestamp: str
    signature: str
    event_id: Optional[str] = None
    invoice: Optional[str] = None
    customer: Optional[str] = None
    transaction: Optional[str] = None
    raw_body: Optional[bytes] = None

    @property
    def order_handle(self) -> str:
        """Correlation key; the event id carries the order handle."""
        return self.id


class PaymentFormDescriptor(BaseModel):
    """What the checkout UI needs to send the customer to the hosted page."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    url: Optional[str] = None
    method: str = "GET"
    session_id: Optional[str] = None
    js_files: list[str] = Field(default_factory=list)
    js: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    reused: bool = False
    error_url: Optional[str] = None
    error: Optional[BusinessException] = Field(default=None, exclude=True)

    @property
    def is_available(self) -> bool:
        return bool(self.url)


class TransactionInfoUpdate(BaseModel):
    transaction_id: Optional[str] = None
    payment_status: PaymentStatus
    amount_refunded: Optional[Decimal] = None


class ApiResult(BaseModel):
    """Outcome of fetch/cancel/capture/refund.

    Either carries a transaction update or the error that prevented one.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    transaction_info: Optional[TransactionInfoUpdate] = None
    error: Optional[BusinessException] = Field(default=None, exclude=True)

    @classmethod
    def empty(cls, error: BusinessException) -> "ApiResult":
        return cls(transaction_info=None, error=error)

    @property
    def ok(self) -> bool:
        return self.transaction_info is not None and self.error is None

    @property
    def retryable(self) -> bool:
        return bool(self.error is not None and self.error.retryable)


class CallbackTransactionInfo(BaseModel):
    amount_authorized: Decimal
    transaction_fee: Decimal = Decimal("0")
    transaction_id: str
    payment_status: PaymentStatus


class CallbackResult(BaseModel):
    """Outcome of a webhook delivery, including the HTTP status to answer with."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    transaction_info: Optional[CallbackTransactionInfo] = None
    http_status: int = 200
    error: Optional[BusinessException] = Field(default=None, exclude=True)

    @classmethod
    def rejected(cls, http_status: int, error: BusinessException) -> "CallbackResult":
        return cls(transaction_info=None, http_status=http_status, error=error)

    @property
    def ok(self) -> bool:
        return self.transaction_info is not None
