"""
Payments API routes.

Exposes the gateway webhook and operator endpoints for checkout, status,
cancel, capture and refund. Keep this thin: no gateway details here.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from api.dependencies import get_order_store, get_payment_service
from application.dtos.payments import ApiResult
from application.services.payment_service import PaymentService
from application.services.webhook_authenticator import WebhookRequestContext
from core.exceptions import business_error_json
from core.logging_config import get_logger
from core.response import success_response
from domain.payment.entity import Customer, Order
from infrastructure.repositories.order_repository import InMemoryOrderStore


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


class OrderPayload(BaseModel):
    total_with_tax: Decimal = Field(gt=0)
    currency: str
    email: Optional[str] = None
    customer_reference: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class RefundPayload(BaseModel):
    amount: Optional[Decimal] = Field(default=None, gt=0)


def _order_from_callback_url(ctx: WebhookRequestContext) -> Optional[str]:
    # Callback URL carries ?order=<number> for events without an order handle.
    return ctx.query.get("order") or None


@router.post("/webhooks/reepay")
async def reepay_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    store: InMemoryOrderStore = Depends(get_order_store),
):
    ctx = WebhookRequestContext(
        raw_body=await request.body(),
        headers={k.lower(): v for k, v in request.headers.items()},
        query=dict(request.query_params),
    )

    order_number = service.resolve_order_from_callback(ctx, fallback=_order_from_callback_url)
    if order_number is None:
        if ctx.failure is not None:
            return _callback_error(request, ctx.failure)
        logger.info("webhook_ignored", event_type=ctx.event.event_type if ctx.event else None)
        return success_response(data={"handled": False}, message="Webhook ignored")

    order = store.get(order_number)
    result = await service.process_callback(order, ctx)
    if result.ok:
        await store.apply_callback(order, result.transaction_info)
        return success_response(
            data={"handled": True, "transaction": result.transaction_info.model_dump(mode="json")},
            message="Webhook processed",
        )
    if result.http_status >= 400 and result.error is not None:
        return _callback_error(request, result.error, status_code=result.http_status)
    return success_response(
        data={"handled": False, "reason": result.error.error_type if result.error else None},
        message="Webhook acknowledged",
    )


def _callback_error(request: Request, exc, status_code: Optional[int] = None) -> JSONResponse:
    response = business_error_json(request, exc)
    if status_code is not None:
        response.status_code = status_code
    return response


@router.put("/orders/{order_number}", summary="Register order (in-memory store)")
async def register_order(order_number: str, payload: OrderPayload, store: InMemoryOrderStore = Depends(get_order_store)):
    order = store.add(
        Order(
            order_number=order_number,
            total_with_tax=payload.total_with_tax,
            currency=payload.currency.upper(),
            customer=Customer(
                email=payload.email,
                reference=payload.customer_reference,
                first_name=payload.first_name,
                last_name=payload.last_name,
            ),
        )
    )
    return success_response(data={"order_number": order.order_number}, message="Order registered")


@router.post("/orders/{order_number}/checkout", summary="Create or reuse checkout session")
async def generate_checkout(
    order_number: str,
    service: PaymentService = Depends(get_payment_service),
    store: InMemoryOrderStore = Depends(get_order_store),
):
    form = await service.generate_checkout(store.get(order_number))
    data = form.model_dump(mode="json")
    data["available"] = form.is_available
    if not form.is_available:
        return success_response(data=data, message="Payment unavailable")
    return success_response(data=data, message="Checkout ready")


@router.get("/orders/{order_number}/status", summary="Fetch payment status")
async def fetch_status(
    order_number: str,
    service: PaymentService = Depends(get_payment_service),
    store: InMemoryOrderStore = Depends(get_order_store),
):
    order = store.get(order_number)
    return await _apply(store, order, await service.fetch_status(order), "Payment status")


@router.post("/orders/{order_number}/cancel", summary="Cancel payment")
async def cancel_payment(
    order_number: str,
    service: PaymentService = Depends(get_payment_service),
    store: InMemoryOrderStore = Depends(get_order_store),
):
    order = store.get(order_number)
    return await _apply(store, order, await service.cancel(order), "Payment cancelled")


@router.post("/orders/{order_number}/capture", summary="Capture payment")
async def capture_payment(
    order_number: str,
    service: PaymentService = Depends(get_payment_service),
    store: InMemoryOrderStore = Depends(get_order_store),
):
    order = store.get(order_number)
    return await _apply(store, order, await service.capture(order), "Payment captured")


@router.post("/orders/{order_number}/refund", summary="Refund payment")
async def refund_payment(
    order_number: str,
    payload: Optional[RefundPayload] = None,
    service: PaymentService = Depends(get_payment_service),
    store: InMemoryOrderStore = Depends(get_order_store),
):
    order = store.get(order_number)
    amount = payload.amount if payload else None
    return await _apply(store, order, await service.refund(order, amount), "Payment refunded")


async def _apply(store: InMemoryOrderStore, order: Order, result: ApiResult, message: str):
    if not result.ok:
        raise result.error
    await store.apply_update(order, result.transaction_info)
    return success_response(data=result.transaction_info.model_dump(mode="json"), message=message)
