"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.ports.payment_gateway import PaymentGateway
from core.settings import GatewayConfig, payment_settings


def get_payment_gateway(
    config: Optional[GatewayConfig] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> PaymentGateway:
    from .reepay_client import ReepayClient
    return ReepayClient(config or payment_settings.gateway_config(), transport=transport)
