"""
Checkout session creation with reuse of a still-usable stored session.

A stored session is reused only while it has not expired and was created for
the same handle, amount and currency.
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.payments import (
    ChargeSession,
    ChargeSessionRequest,
    PaymentFormDescriptor,
    SessionCustomer,
    SessionOrder,
)
from application.ports.payment_gateway import PaymentGateway
from application.utils.money import to_minor_units
from core.logging_config import get_logger
from core.settings import GatewayConfig
from domain.common.exceptions import BusinessException
from domain.payment.entity import Order
from domain.payment.exceptions import GatewayError, PaymentValidationError
from domain.payment.repository import CurrencyLookup, OrderStore
from shared.codes import BusinessCode


logger = get_logger(__name__)

SESSION_ID_KEY = "reepayChargeSessionId"
SESSION_URL_KEY = "reepayChargeSessionUrl"
SESSION_EXPIRES_KEY = "reepayChargeSessionExpiresAt"
SESSION_FINGERPRINT_KEY = "reepayChargeSessionFingerprint"
SESSION_KEYS = (SESSION_ID_KEY, SESSION_URL_KEY, SESSION_EXPIRES_KEY, SESSION_FINGERPRINT_KEY)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def session_fingerprint(req: ChargeSessionRequest) -> str:
    # Stable key derived from what the customer is asked to pay (no timestamp)
    base = f"session|{req.order.handle}|{req.order.amount}|{req.order.currency}"
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


class SessionOrchestrator:
    def __init__(
        self,
        gateway: PaymentGateway,
        order_store: OrderStore,
        currency_lookup: CurrencyLookup,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.gateway = gateway
        self.order_store = order_store
        self.currency_lookup = currency_lookup
        self._clock = clock

    def build_request(self, order: Order, config: GatewayConfig) -> ChargeSessionRequest:
        """Validate the order currency and build the session request.

        Raises PaymentValidationError for a currency that is not ISO 4217 or
        when the continue or cancel URL is not configured.
        """
        currency = (order.currency or "").upper()
        if not self.currency_lookup.is_valid_iso4217(currency):
            raise PaymentValidationError(
                f"Currency must be a valid ISO 4217 currency code: {order.currency}",
                field="currency",
                details={"order_number": order.order_number, "currency": order.currency},
            )
        missing = [name for name in ("continue_url", "cancel_url") if not getattr(config, name)]
        if missing:
            raise PaymentValidationError(
                f"Gateway redirect URL not configured: {', '.join(missing)}",
                field=missing[0],
                details={"order_number": order.order_number, "missing": missing},
            )
        amount = to_minor_units(order.total_with_tax, self.currency_lookup.minor_unit_exponent(currency))
        customer = order.customer
        return ChargeSessionRequest(
            order=SessionOrder(
                handle=order.handle,
                amount=amount,
                currency=currency,
                customer=SessionCustomer(
                    email=customer.email,
                    handle=customer.reference or None,
                    first_name=customer.first_name,
                    last_name=customer.last_name,
                    generate_handle=not customer.reference,
                ),
            ),
            locale=config.locale,
            settle=False,
            accept_url=config.continue_url,
            cancel_url=config.cancel_url,
            payment_methods=list(config.payment_methods) or None,
        )

    async def create_or_reuse_session(self, order: Order, config: GatewayConfig) -> PaymentFormDescriptor:
        req = self.build_request(order, config)
        fingerprint = session_fingerprint(req)

        stored = await self._stored_session(order, fingerprint)
        if stored is not None:
            logger.info("checkout_session_reused", order_number=order.order_number, session_id=stored.id)
            return self._descriptor(stored, config, reused=True)

        try:
            session = await self.gateway.create_session(req)
        except GatewayError as exc:
            logger.error(
                "checkout_session_failed",
                order_number=order.order_number,
                error_type=exc.error_type,
                error=exc.message,
                details=exc.details,
            )
            return self._unavailable(config, exc)
        except Exception as exc:
            logger.error(
                "checkout_session_failed",
                order_number=order.order_number,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
            )
            return self._unavailable(config, GatewayError(str(exc), operation="create_session"))

        try:
            await self._persist(order, session, fingerprint, config)
        except Exception as exc:
            logger.error(
                "checkout_session_persist_failed",
                order_number=order.order_number,
                session_id=session.id,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=not isinstance(exc, BusinessException),
            )
            await self._discard(order)
            error = exc if isinstance(exc, BusinessException) else BusinessException(
                code=BusinessCode.SYSTEM_ERROR,
                message=f"Could not store checkout session: {exc}",
                error_type="SessionPersistError",
                details={"order_number": order.order_number, "session_id": session.id},
            )
            return self._unavailable(config, error)

        logger.info("checkout_session_created", order_number=order.order_number, session_id=session.id)
        return self._descriptor(session, config, reused=False)

    async def invalidate_session(self, order: Order) -> None:
        """Forget the stored session, e.g. after the order total changed."""
        for key in SESSION_KEYS:
            await self.order_store.set_metadata(order, key, None)
        logger.info("checkout_session_invalidated", order_number=order.order_number)

    async def _persist(self, order: Order, session: ChargeSession, fingerprint: str, config: GatewayConfig) -> None:
        # Fingerprint is cleared first and written last, so a partial write is never reused.
        expires_at = self._clock() + timedelta(seconds=config.session_ttl_seconds)
        await self.order_store.set_metadata(order, SESSION_FINGERPRINT_KEY, None)
        await self.order_store.set_metadata(order, SESSION_ID_KEY, session.id)
        await self.order_store.set_metadata(order, SESSION_URL_KEY, session.url)
        await self.order_store.set_metadata(order, SESSION_EXPIRES_KEY, expires_at.isoformat())
        await self.order_store.set_metadata(order, SESSION_FINGERPRINT_KEY, fingerprint)

    async def _discard(self, order: Order) -> None:
        for key in SESSION_KEYS:
            try:
                await self.order_store.set_metadata(order, key, None)
            except Exception as exc:
                logger.warning(
                    "checkout_session_cleanup_failed",
                    order_number=order.order_number,
                    key=key,
                    error=str(exc),
                )

    async def _stored_session(self, order: Order, fingerprint: str) -> Optional[ChargeSession]:
        session_id = await self.order_store.get_metadata(order, SESSION_ID_KEY)
        url = await self.order_store.get_metadata(order, SESSION_URL_KEY)
        if not session_id or not url:
            return None
        if await self.order_store.get_metadata(order, SESSION_FINGERPRINT_KEY) != fingerprint:
            logger.info("checkout_session_stale", order_number=order.order_number, session_id=session_id, reason="changed")
            return None
        expires_raw = await self.order_store.get_metadata(order, SESSION_EXPIRES_KEY)
        try:
            expires_at = datetime.fromisoformat(expires_raw) if expires_raw else None
        except ValueError:
            expires_at = None
        if expires_at is None or expires_at <= self._clock():
            logger.info("checkout_session_stale", order_number=order.order_number, session_id=session_id, reason="expired")
            return None
        return ChargeSession(id=session_id, url=url)

    @staticmethod
    def _descriptor(session: ChargeSession, config: GatewayConfig, *, reused: bool) -> PaymentFormDescriptor:
        return PaymentFormDescriptor(
            url=session.url,
            session_id=session.id,
            js_files=[config.checkout_script_url],
            js=f"var rp = new Reepay.WindowCheckout('{session.id}');",
            metadata={SESSION_ID_KEY: session.id},
            reused=reused,
            error_url=config.error_url,
        )

    @staticmethod
    def _unavailable(config: GatewayConfig, error: BusinessException) -> PaymentFormDescriptor:
        return PaymentFormDescriptor(
            url=None,
            js_files=[config.checkout_script_url],
            error_url=config.error_url,
            error=error,
        )
