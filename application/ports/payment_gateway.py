"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import Charge, ChargeSession, ChargeSessionRequest, Refund


@runtime_checkable
class PaymentGateway(Protocol):
    """Charge/session operations of the hosted-checkout gateway.

    Implementations raise GatewayError subclasses and never retry.
    """

    provider: str

    async def create_session(self, req: ChargeSessionRequest) -> ChargeSession: ...

    async def get_charge(self, handle: str) -> Charge: ...

    async def cancel_charge(self, handle: str) -> Charge: ...

    async def settle_charge(self, handle: str, amount: int | None = None) -> Charge: ...

    async def refund_charge(self, handle: str, amount: int) -> Refund: ...
