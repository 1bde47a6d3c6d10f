from decimal import Decimal

import httpx
import pytest

from application.services.payment_service import PaymentService
from application.services.webhook_authenticator import WebhookRequestContext
from domain.payment.entity import PaymentStatus
from domain.payment.exceptions import GatewayTransportError, StateConflictError
from infrastructure.external.payments.reepay_client import ReepayClient
from tests.conftest import make_order, signed_webhook


@pytest.fixture
def service(reepay_client, order_store, currency_lookup, gateway_config):
    return PaymentService(reepay_client, order_store, currency_lookup, gateway_config)


def _authorized(order_store, order_number="ORD-100"):
    order = order_store.add(make_order(order_number))
    order.transaction.payment_status = PaymentStatus.AUTHORIZED
    order.transaction.amount_authorized = Decimal("49.00")
    order.transaction.transaction_id = "tx_1"
    return order


@pytest.mark.asyncio
async def test_authorized_webhook_marks_order_authorized(service, order_store):
    order = order_store.add(make_order("ORD-100", "49.00", "EUR"))
    ctx = WebhookRequestContext(raw_body=signed_webhook("ORD-100", "invoice_authorized"))

    assert service.resolve_order_from_callback(ctx) == "ORD-100"
    result = await service.process_callback(order, ctx)

    assert result.ok
    assert result.http_status == 200
    assert result.transaction_info.payment_status == PaymentStatus.AUTHORIZED
    assert result.transaction_info.amount_authorized == Decimal("49.00")
    assert result.transaction_info.transaction_fee == Decimal("0")
    assert result.transaction_info.transaction_id
    assert ctx.parse_count == 1


@pytest.mark.asyncio
async def test_webhook_transaction_id_is_used_when_present(service, order_store):
    order = order_store.add(make_order())
    ctx = WebhookRequestContext(raw_body=signed_webhook("ORD-100", "invoice_settled", transaction="tx_gw"))
    result = await service.process_callback(order, ctx)
    assert result.transaction_info.transaction_id == "tx_gw"
    assert result.transaction_info.payment_status == PaymentStatus.AUTHORIZED


@pytest.mark.asyncio
async def test_bad_signature_is_rejected_with_401(service, order_store):
    order = order_store.add(make_order())
    ctx = WebhookRequestContext(raw_body=signed_webhook("ORD-100", "invoice_authorized", secret="forged"))

    assert service.resolve_order_from_callback(ctx) is None
    result = await service.process_callback(order, ctx)

    assert not result.ok
    assert result.http_status == 401
    assert result.error.error_type == "WebhookAuthenticationError"
    assert ctx.parse_count == 1


@pytest.mark.asyncio
async def test_missing_secret_is_rejected_with_500(reepay_client, order_store, currency_lookup, gateway_config):
    config = gateway_config.model_copy(update={"webhook_secret": None})
    service = PaymentService(reepay_client, order_store, currency_lookup, config)
    order = order_store.add(make_order())
    result = await service.process_callback(order, WebhookRequestContext(raw_body=signed_webhook("ORD-100", "invoice_authorized")))
    assert result.http_status == 500
    assert result.error.retryable is True


@pytest.mark.asyncio
async def test_malformed_webhook_is_rejected_with_400(service, order_store):
    order = order_store.add(make_order())
    result = await service.process_callback(order, WebhookRequestContext(raw_body=b"[]"))
    assert result.http_status == 400


@pytest.mark.asyncio
async def test_other_event_types_are_acknowledged(service, order_store):
    order = order_store.add(make_order())
    ctx = WebhookRequestContext(raw_body=signed_webhook("ORD-100", "customer_created"))

    assert service.resolve_order_from_callback(ctx, fallback=lambda c: "ORD-FALLBACK") == "ORD-FALLBACK"
    result = await service.process_callback(order, ctx)

    assert result.http_status == 200
    assert result.transaction_info is None
    assert result.error is None


@pytest.mark.asyncio
async def test_webhook_for_other_order_is_rejected(service, order_store):
    order = order_store.add(make_order("ORD-100"))
    result = await service.process_callback(order, WebhookRequestContext(raw_body=signed_webhook("ORD-200", "invoice_authorized")))
    assert result.http_status == 400


@pytest.mark.asyncio
async def test_late_authorization_does_not_regress_captured_order(service, order_store):
    order = _authorized(order_store)
    order.transaction.payment_status = PaymentStatus.CAPTURED
    result = await service.process_callback(order, WebhookRequestContext(raw_body=signed_webhook("ORD-100", "invoice_authorized")))
    assert result.http_status == 200
    assert not result.ok
    assert isinstance(result.error, StateConflictError)


@pytest.mark.asyncio
async def test_fetch_status_settled_is_captured(service, order_store, fake_reepay):
    order = _authorized(order_store)
    fake_reepay.add_charge("ORD-100", "settled", transaction="tx_1")

    result = await service.fetch_status(order)

    assert result.ok
    assert result.transaction_info.payment_status == PaymentStatus.CAPTURED
    assert result.transaction_info.transaction_id == "tx_1"


@pytest.mark.asyncio
async def test_fetch_status_regression_is_conflict(service, order_store, fake_reepay):
    order = _authorized(order_store)
    order.transaction.payment_status = PaymentStatus.CAPTURED
    fake_reepay.add_charge("ORD-100", "authorized")

    result = await service.fetch_status(order)

    assert not result.ok
    assert isinstance(result.error, StateConflictError)
    assert result.retryable is False


@pytest.mark.asyncio
async def test_fetch_status_unknown_state_from_fresh_order(service, order_store, fake_reepay):
    order = order_store.add(make_order())
    fake_reepay.add_charge("ORD-100", "created")
    result = await service.fetch_status(order)
    assert result.transaction_info.payment_status == PaymentStatus.INITIALIZED


@pytest.mark.asyncio
async def test_capture_authorized_charge(service, order_store, fake_reepay):
    order = _authorized(order_store)
    fake_reepay.add_charge("ORD-100", "authorized")

    result = await service.capture(order)

    assert result.ok
    assert result.transaction_info.payment_status == PaymentStatus.CAPTURED
    assert fake_reepay.calls("POST", "/v1/charge/ORD-100/settle") == 1


@pytest.mark.asyncio
async def test_capture_cancelled_charge_is_conflict(service, order_store, fake_reepay):
    order = _authorized(order_store)
    fake_reepay.add_charge("ORD-100", "cancelled")

    result = await service.capture(order)

    assert not result.ok
    assert isinstance(result.error, StateConflictError)
    assert result.error.details["current"] == "cancelled"
    assert fake_reepay.calls("POST", "/v1/charge/ORD-100/settle") == 0


@pytest.mark.asyncio
async def test_capture_already_captured_is_noop(service, order_store, fake_reepay):
    order = _authorized(order_store)
    fake_reepay.add_charge("ORD-100", "settled")
    result = await service.capture(order)
    assert result.transaction_info.payment_status == PaymentStatus.CAPTURED
    assert fake_reepay.calls("POST", "/v1/charge/ORD-100/settle") == 0


@pytest.mark.asyncio
async def test_cancel_authorized_charge(service, order_store, fake_reepay):
    order = _authorized(order_store)
    fake_reepay.add_charge("ORD-100", "authorized")
    result = await service.cancel(order)
    assert result.transaction_info.payment_status == PaymentStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_captured_charge_is_conflict(service, order_store, fake_reepay):
    order = _authorized(order_store)
    fake_reepay.add_charge("ORD-100", "settled")
    result = await service.cancel(order)
    assert isinstance(result.error, StateConflictError)
    assert fake_reepay.calls("POST", "/v1/charge/ORD-100/cancel") == 0


@pytest.mark.asyncio
async def test_refund_partial_amount(service, order_store, fake_reepay):
    order = _authorized(order_store)
    order.transaction.payment_status = PaymentStatus.CAPTURED
    fake_reepay.add_charge("ORD-100", "settled")

    result = await service.refund(order, Decimal("10.00"))

    assert result.ok
    assert result.transaction_info.payment_status == PaymentStatus.CAPTURED
    assert result.transaction_info.amount_refunded == Decimal("10.00")


@pytest.mark.asyncio
async def test_refund_requires_captured_charge(service, order_store, fake_reepay):
    order = _authorized(order_store)
    fake_reepay.add_charge("ORD-100", "authorized")
    result = await service.refund(order)
    assert isinstance(result.error, StateConflictError)
    assert fake_reepay.calls("POST", "/v1/refund") == 0


@pytest.mark.asyncio
async def test_transport_failure_is_typed_and_retryable(service, order_store, fake_reepay):
    order = _authorized(order_store)
    fake_reepay.fail_with = httpx.ConnectError("connection refused")

    result = await service.fetch_status(order)

    assert not result.ok
    assert result.transaction_info is None
    assert isinstance(result.error, GatewayTransportError)
    assert result.retryable is True


@pytest.mark.asyncio
async def test_checkout_then_authorize_then_capture(service, order_store, fake_reepay):
    order = order_store.add(make_order())
    form = await service.generate_checkout(order)
    assert form.is_available

    ctx = WebhookRequestContext(raw_body=signed_webhook("ORD-100", "invoice_authorized", transaction="tx_9"))
    callback = await service.process_callback(order, ctx)
    await order_store.apply_callback(order, callback.transaction_info)
    assert order.last_status == PaymentStatus.AUTHORIZED

    fake_reepay.add_charge("ORD-100", "authorized", transaction="tx_9")
    captured = await service.capture(order)
    await order_store.apply_update(order, captured.transaction_info)

    assert order.last_status == PaymentStatus.CAPTURED
    assert order.transaction.transaction_id == "tx_9"
    await service.aclose()


@pytest.mark.asyncio
async def test_redelivered_authorization_keeps_transaction_id(service, order_store):
    order = order_store.add(make_order())
    body = signed_webhook("ORD-100", "invoice_authorized")

    first = await service.process_callback(order, WebhookRequestContext(raw_body=body))
    await order_store.apply_callback(order, first.transaction_info)
    second = await service.process_callback(order, WebhookRequestContext(raw_body=body))
    await order_store.apply_callback(order, second.transaction_info)

    assert second.ok
    assert second.transaction_info.transaction_id == first.transaction_info.transaction_id
    assert second.transaction_info.amount_authorized == Decimal("49.00")
    assert order.transaction.transaction_id == first.transaction_info.transaction_id


@pytest.mark.asyncio
async def test_refund_succeeds_when_gateway_read_fails_afterwards(gateway_config, order_store, currency_lookup, fake_reepay):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET" and fake_reepay.calls("POST", "/v1/refund"):
            fake_reepay.requests.append(request)
            return httpx.Response(503, json={"error": "Service unavailable"})
        return fake_reepay.handler(request)

    client = ReepayClient(gateway_config, transport=httpx.MockTransport(handler))
    service = PaymentService(client, order_store, currency_lookup, gateway_config)
    order = _authorized(order_store)
    order.transaction.payment_status = PaymentStatus.CAPTURED
    fake_reepay.add_charge("ORD-100", "settled")

    result = await service.refund(order)

    assert result.ok
    assert result.retryable is False
    assert result.transaction_info.amount_refunded == Decimal("49.00")
    assert fake_reepay.calls("POST", "/v1/refund") == 1
    await service.aclose()


@pytest.mark.asyncio
async def test_refund_adds_to_previous_refunds(service, order_store, fake_reepay):
    order = _authorized(order_store)
    order.transaction.payment_status = PaymentStatus.CAPTURED
    fake_reepay.add_charge("ORD-100", "settled")["refunded_amount"] = 500

    result = await service.refund(order, Decimal("10.00"))

    assert result.transaction_info.amount_refunded == Decimal("15.00")


@pytest.mark.asyncio
async def test_declined_refund_is_not_retryable(gateway_config, order_store, currency_lookup, fake_reepay):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/refund":
            fake_reepay.requests.append(request)
            return httpx.Response(200, json={"id": "rf_1", "state": "failed", "invoice": "ORD-100", "amount": 4900})
        return fake_reepay.handler(request)

    service = PaymentService(
        ReepayClient(gateway_config, transport=httpx.MockTransport(handler)), order_store, currency_lookup, gateway_config
    )
    order = _authorized(order_store)
    order.transaction.payment_status = PaymentStatus.CAPTURED
    fake_reepay.add_charge("ORD-100", "settled")

    result = await service.refund(order)

    assert not result.ok
    assert result.error.error_type == "GatewayError"
    assert result.retryable is False
