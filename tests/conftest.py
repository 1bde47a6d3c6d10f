"""Pytest bootstrap configuration.

Set gateway environment variables before any module reads settings, and
provide an in-process fake of the Reepay API served through httpx.MockTransport.
"""
import json
import os
from decimal import Decimal

os.environ.setdefault("REEPAY__PRIVATE_KEY", "priv_test")
os.environ.setdefault("REEPAY__WEBHOOK_SECRET", "whsec_test")

import httpx
import pytest

from application.services.webhook_authenticator import compute_signature
from core.settings import GatewayConfig
from domain.payment.entity import Customer, Order
from infrastructure.external.currency import Iso4217CurrencyLookup
from infrastructure.external.payments.reepay_client import ReepayClient
from infrastructure.repositories.order_repository import InMemoryOrderStore


WEBHOOK_SECRET = "whsec_test"
TIMESTAMP = "2026-10-16T12:00:00.000Z"


class FakeReepay:
    """Minimal stateful stand-in for the Reepay REST API."""

    def __init__(self) -> None:
        self.charges: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.sessions_created = 0
        self.fail_with = None

    def add_charge(self, handle: str, state: str, amount: int = 4900, currency: str = "EUR", transaction: str = "tx_1"):
        self.charges[handle] = {
            "handle": handle,
            "state": state,
            "amount": amount,
            "currency": currency,
            "transaction": transaction,
            "authorized_amount": amount,
            "refunded_amount": 0,
        }
        return self.charges[handle]

    def calls(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.fail_with, Exception):
            raise self.fail_with
        if self.fail_with is not None:
            status, body = self.fail_with
            return httpx.Response(status, json=body)

        path = request.url.path
        if request.method == "POST" and path == "/v1/session/charge":
            self.sessions_created += 1
            sid = f"cs_{self.sessions_created}"
            return httpx.Response(200, json={"id": sid, "url": f"https://checkout.reepay.com/#/{sid}"})

        if request.method == "POST" and path == "/v1/refund":
            body = json.loads(request.content)
            charge = self.charges[body["invoice"]]
            charge["refunded_amount"] += body["amount"]
            return httpx.Response(200, json={"id": "rf_1", "state": "refunded", "invoice": body["invoice"], "amount": body["amount"]})

        parts = path.split("/")
        if parts[1:3] == ["v1", "charge"] and len(parts) >= 4:
            charge = self.charges.get(parts[3])
            if charge is None:
                return httpx.Response(404, json={"code": 20, "error": "Charge not found", "request_id": "req_1"})
            action = parts[4] if len(parts) > 4 else None
            if action == "settle":
                if charge["state"] != "authorized":
                    return httpx.Response(400, json={"code": 16, "error": "Invalid charge state"})
                charge["state"] = "settled"
            elif action == "cancel":
                if charge["state"] != "authorized":
                    return httpx.Response(400, json={"code": 16, "error": "Invalid charge state"})
                charge["state"] = "cancelled"
            return httpx.Response(200, json=charge)

        return httpx.Response(404, json={"error": "Not found"})


def signed_webhook(event_id: str, event_type: str, *, secret: str = WEBHOOK_SECRET, timestamp: str = TIMESTAMP, **extra) -> bytes:
    body = {
        "id": event_id,
        "event_id": f"ev_{event_id}",
        "event_type": event_type,
        "timestamp": timestamp,
        "signature": compute_signature(secret, timestamp, event_id),
        **extra,
    }
    return json.dumps(body).encode("utf-8")


def make_order(order_number: str = "ORD-100", total: str = "49.00", currency: str = "EUR") -> Order:
    return Order(
        order_number=order_number,
        total_with_tax=Decimal(total),
        currency=currency,
        customer=Customer(email="jane@example.com", first_name="Jane", last_name="Doe"),
    )


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        private_key="priv_test",
        webhook_secret=WEBHOOK_SECRET,
        api_base_url="https://api.reepay.test",
        checkout_api_base_url="https://checkout-api.reepay.test",
        locale="en_GB",
        continue_url="https://shop.test/continue",
        cancel_url="https://shop.test/cancel",
        error_url="https://shop.test/error",
    )


@pytest.fixture
def fake_reepay() -> FakeReepay:
    return FakeReepay()


@pytest.fixture
def reepay_client(gateway_config, fake_reepay) -> ReepayClient:
    return ReepayClient(gateway_config, transport=httpx.MockTransport(fake_reepay.handler))


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def currency_lookup() -> Iso4217CurrencyLookup:
    return Iso4217CurrencyLookup()
