"""
Base payment client implementing shared concerns: http, error mapping, logging.

Concrete providers subclass and implement provider-specific endpoints. No
retries happen here; callers decide whether a failure is worth
repeating based on the error type.
"""
from __future__ import annotations

import json
import time
from typing import Any, Optional

import httpx

from core.logging_config import get_logger
from core.settings import PaymentTimeouts
from domain.payment.exceptions import (
    GatewayDecodeError,
    GatewayProtocolError,
    GatewayTransportError,
)


logger = get_logger(__name__)


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[PaymentTimeouts] = None,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or PaymentTimeouts()
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._timeouts_cfg.total,
            connect=self._timeouts_cfg.connect,
            read=self._timeouts_cfg.read,
            write=self._timeouts_cfg.write,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeouts,
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        json_data: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        Raises GatewayTransportError, GatewayProtocolError or GatewayDecodeError.
        """
        started = time.perf_counter()
        self._log("gateway_request", operation=operation, method=method, url=url)
        try:
            response = await self.client.request(method, url, json=json_data)
        except httpx.TimeoutException as exc:
            self._log_failure(operation, "timeout", exc)
            raise GatewayTransportError(
                f"Gateway request timed out after {self._timeouts_cfg.total}s",
                operation=operation,
                details={"url": url},
            ) from exc
        except httpx.TransportError as exc:
            self._log_failure(operation, "network", exc)
            raise GatewayTransportError(
                f"Gateway network error: {exc}",
                operation=operation,
                details={"url": url},
            ) from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._log(
            "gateway_response",
            operation=operation,
            status_code=response.status_code,
            elapsed_ms=round(elapsed_ms, 2),
        )

        if not response.is_success:
            body = self._safe_json(response)
            gateway_code = None
            message = f"Gateway responded with status {response.status_code}"
            if isinstance(body, dict):
                gateway_code = body.get("code")
                message = body.get("message") or body.get("error") or message
            raise GatewayProtocolError(
                str(message),
                status_code=response.status_code,
                operation=operation,
                gateway_code=str(gateway_code) if gateway_code is not None else None,
                details={"request_id": body.get("request_id") if isinstance(body, dict) else None},
            )

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise GatewayDecodeError(
                "Gateway response is not valid JSON",
                operation=operation,
                details={"status_code": response.status_code},
            ) from exc

    @staticmethod
    def _safe_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )

    def _log_failure(self, operation: str, kind: str, exc: Exception) -> None:
        logger.warning(
            "gateway_transport_failed",
            provider=self.provider,
            operation=operation,
            kind=kind,
            error=str(exc),
        )
