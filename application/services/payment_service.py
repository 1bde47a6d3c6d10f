"""
Application service orchestrating the payment lifecycle.

This class depends only on the application PaymentGateway port, the domain
collaborator interfaces and DTOs. Gateway implementations are provided by
infrastructure and must be injected from the composition root (API/tasks),
keeping dependencies one-way.

Every operation returns a typed result; gateway and network faults never
escape into the checkout or webhook flow. The one exception is an invalid
order currency in generate_checkout, which is a caller bug and raises
PaymentValidationError before anything is sent.
"""
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from application.dtos.payments import (
    ApiResult,
    CallbackResult,
    CallbackTransactionInfo,
    Charge,
    PaymentFormDescriptor,
    TransactionInfoUpdate,
)
from application.ports.payment_gateway import PaymentGateway
from application.services.session_orchestrator import SessionOrchestrator
from application.services.webhook_authenticator import WebhookAuthenticator, WebhookRequestContext
from application.utils.money import from_minor_units, to_minor_units
from core.logging_config import get_logger
from core.settings import GatewayConfig
from domain.common.exceptions import BusinessException
from domain.payment.entity import Order, PaymentStatus, can_transition, ensure_transition
from domain.payment.exceptions import (
    GatewayError,
    StateConflictError,
    WebhookAuthenticationError,
    WebhookConfigurationError,
    WebhookPayloadError,
)
from domain.payment.repository import CurrencyLookup, OrderStore
from domain.payment.status_mapper import map_status
from shared.codes import BusinessCode
from shared.codes.payment_codes import ORDER_RESOLVING_EVENT_TYPES


logger = get_logger(__name__)

FallbackResolver = Callable[[WebhookRequestContext], Optional[str]]


class PaymentService:
    def __init__(
        self,
        gateway: PaymentGateway,
        order_store: OrderStore,
        currency_lookup: CurrencyLookup,
        config: GatewayConfig,
        *,
        sessions: Optional[SessionOrchestrator] = None,
        authenticator: Optional[WebhookAuthenticator] = None,
    ) -> None:
        self.gateway = gateway
        self.order_store = order_store
        self.currency_lookup = currency_lookup
        self.config = config
        self.sessions = sessions or SessionOrchestrator(gateway, order_store, currency_lookup)
        self.authenticator = authenticator or WebhookAuthenticator(config.webhook_secret)

    # Checkout

    async def generate_checkout(self, order: Order) -> PaymentFormDescriptor:
        logger.info("payment_checkout_request", order_number=order.order_number, currency=order.currency)
        form = await self.sessions.create_or_reuse_session(order, self.config)
        logger.info(
            "payment_checkout_response",
            order_number=order.order_number,
            available=form.is_available,
            reused=form.reused,
        )
        return form

    # Webhooks

    def resolve_order_from_callback(
        self,
        ctx: WebhookRequestContext,
        fallback: Optional[FallbackResolver] = None,
    ) -> Optional[str]:
        """Return the order number a webhook delivery belongs to.

        Only authenticated, order-resolving events are trusted; anything else
        is handed to the host's fallback resolver.
        """
        try:
            event = self.authenticator.read_event(ctx)
            if event.id and event.event_type in ORDER_RESOLVING_EVENT_TYPES:
                return event.order_handle
        except BusinessException as exc:
            logger.info("payment_callback_unresolved", error_type=exc.error_type)
        return fallback(ctx) if fallback else None

    async def process_callback(self, order: Order, ctx: WebhookRequestContext) -> CallbackResult:
        """Turn an accepted webhook into an Authorized transaction.

        Settlement is never inferred from the callback; it is confirmed later
        by fetch_status.
        """
        try:
            event = self.authenticator.read_event(ctx)
        except WebhookAuthenticationError as exc:
            return CallbackResult.rejected(401, exc)
        except WebhookPayloadError as exc:
            return CallbackResult.rejected(400, exc)
        except WebhookConfigurationError as exc:
            return CallbackResult.rejected(500, exc)
        except Exception as exc:
            logger.error("payment_callback_failed", order_number=order.order_number, error=str(exc), exc_info=True)
            return CallbackResult.rejected(500, _unexpected(exc))

        if event.event_type not in ORDER_RESOLVING_EVENT_TYPES:
            # Acknowledged so the gateway stops redelivering; nothing to apply.
            logger.info("payment_callback_ignored", order_number=order.order_number, event_type=event.event_type)
            return CallbackResult(http_status=200)

        if event.order_handle != order.order_number:
            exc = WebhookPayloadError(
                "Webhook event does not belong to this order",
                details={"event_id": event.id, "order_number": order.order_number},
            )
            logger.warning("payment_callback_mismatch", order_number=order.order_number, event_id=event.id)
            return CallbackResult.rejected(400, exc)

        if not can_transition(order.last_status, PaymentStatus.AUTHORIZED):
            conflict = StateConflictError(
                "Late authorization for an order that has moved on",
                current=order.last_status.value,
                requested=PaymentStatus.AUTHORIZED.value,
                order_number=order.order_number,
            )
            logger.warning(
                "payment_callback_state_conflict",
                order_number=order.order_number,
                current=order.last_status.value,
                event_type=event.event_type,
            )
            return CallbackResult(http_status=200, error=conflict)

        known = order.transaction
        if order.last_status == PaymentStatus.AUTHORIZED and known.transaction_id and not event.transaction:
            # Redelivery of an authorization already recorded on the order.
            logger.info(
                "payment_callback_redelivered",
                order_number=order.order_number,
                event_type=event.event_type,
                transaction_id=known.transaction_id,
            )
            return CallbackResult(
                transaction_info=CallbackTransactionInfo(
                    amount_authorized=known.amount_authorized or order.total_with_tax,
                    transaction_fee=Decimal("0"),
                    transaction_id=known.transaction_id,
                    payment_status=PaymentStatus.AUTHORIZED,
                ),
                http_status=200,
            )

        transaction_id = event.transaction or uuid.uuid4().hex
        logger.info(
            "payment_callback_authorized",
            order_number=order.order_number,
            event_type=event.event_type,
            transaction_id=transaction_id,
        )
        return CallbackResult(
            transaction_info=CallbackTransactionInfo(
                amount_authorized=order.total_with_tax,
                transaction_fee=Decimal("0"),
                transaction_id=transaction_id,
                payment_status=PaymentStatus.AUTHORIZED,
            ),
            http_status=200,
        )

    # Charge operations

    async def fetch_status(self, order: Order) -> ApiResult:
        async def _op() -> TransactionInfoUpdate:
            charge = await self.gateway.get_charge(order.handle)
            status = map_status(charge.state)
            ensure_transition(order.last_status, status, order_number=order.order_number)
            return self._update(order, charge, status)

        return await self._run("fetch_status", order, _op)

    async def cancel(self, order: Order) -> ApiResult:
        async def _op() -> TransactionInfoUpdate:
            current = await self.gateway.get_charge(order.handle)
            status = map_status(current.state)
            if status == PaymentStatus.CANCELLED:
                return self._update(order, current, status)
            self._require(order, status, {PaymentStatus.AUTHORIZED}, PaymentStatus.CANCELLED)
            charge = await self.gateway.cancel_charge(order.handle)
            return self._checked_update(order, charge, status)

        return await self._run("cancel", order, _op)

    async def capture(self, order: Order) -> ApiResult:
        async def _op() -> TransactionInfoUpdate:
            current = await self.gateway.get_charge(order.handle)
            status = map_status(current.state)
            if status == PaymentStatus.CAPTURED:
                return self._update(order, current, status)
            self._require(order, status, {PaymentStatus.AUTHORIZED}, PaymentStatus.CAPTURED)
            amount = self._minor_amount(order, order.transaction.amount_authorized or order.total_with_tax)
            charge = await self.gateway.settle_charge(order.handle, amount)
            return self._checked_update(order, charge, status)

        return await self._run("capture", order, _op)

    async def refund(self, order: Order, amount: Optional[Decimal] = None) -> ApiResult:
        async def _op() -> TransactionInfoUpdate:
            current = await self.gateway.get_charge(order.handle)
            status = map_status(current.state)
            # Refund keeps the charge captured; only the refunded amount changes.
            self._require(order, status, {PaymentStatus.CAPTURED}, PaymentStatus.CAPTURED, action="refund")
            value = amount if amount is not None else (order.transaction.amount_authorized or order.total_with_tax)
            refund = await self.gateway.refund_charge(order.handle, self._minor_amount(order, value))
            if refund.state == "failed":
                raise GatewayError(
                    "Refund was declined by the gateway",
                    operation="refund_charge",
                    details={"refund_id": refund.id},
                )
            refunded = (current.refunded_amount or 0) + refund.amount
            return TransactionInfoUpdate(
                transaction_id=current.transaction,
                payment_status=status,
                amount_refunded=from_minor_units(refunded, self._exponent(order, current.currency)),
            )

        return await self._run("refund", order, _op)

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()

    # Helpers

    async def _run(
        self,
        operation: str,
        order: Order,
        op: Callable[[], Awaitable[TransactionInfoUpdate]],
    ) -> ApiResult:
        logger.info(f"payment_{operation}_request", order_number=order.order_number)
        try:
            info = await op()
        except StateConflictError as exc:
            logger.warning(
                f"payment_{operation}_state_conflict",
                order_number=order.order_number,
                details=exc.details,
            )
            return ApiResult.empty(exc)
        except GatewayError as exc:
            logger.error(
                f"payment_{operation}_failed",
                order_number=order.order_number,
                error_type=exc.error_type,
                error=exc.message,
                retryable=exc.retryable,
                details=exc.details,
            )
            return ApiResult.empty(exc)
        except BusinessException as exc:
            logger.error(
                f"payment_{operation}_failed",
                order_number=order.order_number,
                error_type=exc.error_type,
                error=exc.message,
            )
            return ApiResult.empty(exc)
        except Exception as exc:
            logger.error(
                f"payment_{operation}_failed",
                order_number=order.order_number,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
            )
            return ApiResult.empty(_unexpected(exc))

        logger.info(
            f"payment_{operation}_response",
            order_number=order.order_number,
            status=info.payment_status.value,
            transaction_id=info.transaction_id,
        )
        return ApiResult(transaction_info=info)

    @staticmethod
    def _require(
        order: Order,
        current: PaymentStatus,
        allowed: set[PaymentStatus],
        target: PaymentStatus,
        *,
        action: str | None = None,
    ) -> None:
        if current not in allowed:
            raise StateConflictError(
                f"Cannot {action or target.value} a charge that is {current.value}",
                current=current.value,
                requested=action or target.value,
                order_number=order.order_number,
            )

    def _checked_update(self, order: Order, charge: Charge, before: PaymentStatus) -> TransactionInfoUpdate:
        status = map_status(charge.state)
        ensure_transition(before, status, order_number=order.order_number)
        return self._update(order, charge, status)

    def _update(self, order: Order, charge: Charge, status: PaymentStatus) -> TransactionInfoUpdate:
        refunded = None
        if charge.refunded_amount is not None:
            refunded = from_minor_units(charge.refunded_amount, self._exponent(order, charge.currency))
        return TransactionInfoUpdate(
            transaction_id=charge.transaction,
            payment_status=status,
            amount_refunded=refunded,
        )

    def _exponent(self, order: Order, currency: Optional[str] = None) -> int:
        return self.currency_lookup.minor_unit_exponent((currency or order.currency).upper())

    def _minor_amount(self, order: Order, amount: Decimal) -> int:
        return to_minor_units(amount, self._exponent(order))


def _unexpected(exc: Exception) -> BusinessException:
    return BusinessException(
        code=BusinessCode.SYSTEM_ERROR,
        message=str(exc) or type(exc).__name__,
        error_type="UnexpectedError",
    )
