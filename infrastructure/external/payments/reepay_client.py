"""
Reepay adapter over the REST API using httpx.

Endpoints:
- POST {checkout_api}/v1/session/charge      create hosted checkout session
- GET  {api}/v1/charge/{handle}               read charge
- POST {api}/v1/charge/{handle}/cancel        cancel authorized charge
- POST {api}/v1/charge/{handle}/settle        settle (capture) charge
- POST {api}/v1/refund                        refund settled charge

Authentication is HTTP Basic with the private key as user name and an empty
password on every call.
"""
from __future__ import annotations

import base64
from typing import Any, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from application.dtos.payments import Charge, ChargeSession, ChargeSessionRequest, Refund
from core.settings import GatewayConfig
from domain.payment.exceptions import GatewayDecodeError
from infrastructure.external.payments.base import BasePaymentClient


M = TypeVar("M", bound=BaseModel)

SESSION_CHARGE_PATH = "/v1/session/charge"
CHARGE_PATH = "/v1/charge/{handle}"
CANCEL_CHARGE_PATH = "/v1/charge/{handle}/cancel"
SETTLE_CHARGE_PATH = "/v1/charge/{handle}/settle"
REFUND_PATH = "/v1/refund"


def basic_auth_header(private_key: str) -> str:
    token = base64.b64encode(f"{private_key}:".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class ReepayClient(BasePaymentClient):
    provider = "reepay"

    def __init__(self, config: GatewayConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not config.private_key:
            raise RuntimeError("Reepay private key not configured")
        super().__init__(
            timeouts=config.timeouts,
            headers={"Authorization": basic_auth_header(config.private_key)},
            transport=transport,
        )
        self._api = config.api_base_url.rstrip("/")
        self._checkout_api = config.checkout_api_base_url.rstrip("/")

    def _charge_url(self, template: str, handle: str) -> str:
        return self._api + template.format(handle=quote(handle, safe=""))

    @staticmethod
    def _decode(model: Type[M], body: Any, operation: str) -> M:
        try:
            return model.model_validate(body)
        except ValidationError as exc:
            raise GatewayDecodeError(
                f"Unexpected {operation} response shape",
                operation=operation,
                details={"errors": exc.errors(include_url=False, include_input=False)},
            ) from exc

    async def create_session(self, req: ChargeSessionRequest) -> ChargeSession:
        body = await self._request(
            "POST",
            self._checkout_api + SESSION_CHARGE_PATH,
            operation="create_session",
            json_data=req.to_payload(),
        )
        return self._decode(ChargeSession, body, "create_session")

    async def get_charge(self, handle: str) -> Charge:
        body = await self._request("GET", self._charge_url(CHARGE_PATH, handle), operation="get_charge")
        return self._decode(Charge, body, "get_charge")

    async def cancel_charge(self, handle: str) -> Charge:
        body = await self._request("POST", self._charge_url(CANCEL_CHARGE_PATH, handle), operation="cancel_charge")
        return self._decode(Charge, body, "cancel_charge")

    async def settle_charge(self, handle: str, amount: int | None = None) -> Charge:
        payload = {"amount": amount} if amount is not None else {}
        body = await self._request(
            "POST",
            self._charge_url(SETTLE_CHARGE_PATH, handle),
            operation="settle_charge",
            json_data=payload,
        )
        return self._decode(Charge, body, "settle_charge")

    async def refund_charge(self, handle: str, amount: int) -> Refund:
        """Refund part or all of a settled charge; the charge is not re-read."""
        body = await self._request(
            "POST",
            self._api + REFUND_PATH,
            operation="refund_charge",
            json_data={"invoice": handle, "amount": amount},
        )
        return self._decode(Refund, body, "refund_charge")
