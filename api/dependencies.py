"""
API dependencies - composition root for the payment core.
"""
from typing import AsyncIterator, Optional

import httpx
from fastapi import Depends

from application.services.payment_service import PaymentService
from core.settings import GatewayConfig, payment_settings
from domain.payment.repository import CurrencyLookup
from infrastructure.external.currency import Iso4217CurrencyLookup
from infrastructure.external.payments import get_payment_gateway
from infrastructure.repositories.order_repository import InMemoryOrderStore


_order_store = InMemoryOrderStore()
_currency_lookup = Iso4217CurrencyLookup()


def get_order_store() -> InMemoryOrderStore:
    return _order_store


def get_currency_lookup() -> CurrencyLookup:
    return _currency_lookup


def get_gateway_config() -> GatewayConfig:
    return payment_settings.gateway_config()


def get_gateway_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Default httpx transport; overridden in tests."""
    return None


async def get_payment_service(
    config: GatewayConfig = Depends(get_gateway_config),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_gateway_transport),
    order_store: InMemoryOrderStore = Depends(get_order_store),
    currency_lookup: CurrencyLookup = Depends(get_currency_lookup),
) -> AsyncIterator[PaymentService]:
    service = PaymentService(
        gateway=get_payment_gateway(config, transport=transport),
        order_store=order_store,
        currency_lookup=currency_lookup,
        config=config,
    )
    try:
        yield service
    finally:
        await service.aclose()
