"""
Payment errors, one class per failure kind.

Gateway errors are split by where the failure happened (network, HTTP
status, body decoding) so callers can decide whether repeating the request
makes sense. Webhook errors are split the same way: a forged or broken
delivery is rejected, a local misconfiguration asks the gateway to retry.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentValidationError(BusinessException):
    def __init__(self, message: str, *, field: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.VALIDATION_ERROR,
            message=message,
            error_type="PaymentValidationError",
            details=details,
            field=field,
        )


class GatewayError(BusinessException):
    """Base class for failures talking to the payment gateway."""

    def __init__(
        self,
        message: str,
        *,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "GatewayError",
        operation: str | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": "reepay", "operation": operation}
        if details:
            full_details.update(details)
        self.operation = operation
        super().__init__(code=code, message=message, error_type=error_type, details=full_details)


class GatewayTransportError(GatewayError):
    """Network failure or timeout; the request may not have reached the gateway."""

    retryable = True

    def __init__(self, message: str, *, operation: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            code=PaymentCode.TRANSPORT_ERROR,
            error_type="GatewayTransportError",
            operation=operation,
            details=details,
        )


class GatewayProtocolError(GatewayError):
    """The gateway answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        operation: str | None = None,
        gateway_code: str | None = None,
        details: Optional[dict] = None,
    ):
        self.status_code = status_code
        self.gateway_code = gateway_code
        full_details = {"status_code": status_code, "gateway_code": gateway_code}
        if details:
            full_details.update(details)
        super().__init__(
            message,
            code=PaymentCode.PROTOCOL_ERROR,
            error_type="GatewayProtocolError",
            operation=operation,
            details=full_details,
        )

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code == 429 or self.status_code >= 500


class GatewayDecodeError(GatewayError):
    """The gateway answered 2xx but the body is not the expected JSON shape."""

    def __init__(self, message: str, *, operation: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            code=PaymentCode.DECODE_ERROR,
            error_type="GatewayDecodeError",
            operation=operation,
            details=details,
        )


class WebhookAuthenticationError(BusinessException):
    def __init__(self, message: str = "Webhook signature mismatch", *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="WebhookAuthenticationError",
            details=details,
        )


class WebhookPayloadError(BusinessException):
    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.WEBHOOK_PAYLOAD_ERROR,
            message=message,
            error_type="WebhookPayloadError",
            details=details,
        )


class WebhookConfigurationError(BusinessException):
    """The webhook cannot be verified because of a local problem."""

    retryable = True

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.WEBHOOK_CONFIG_ERROR,
            message=message,
            error_type="WebhookConfigurationError",
            details=details,
        )


class StateConflictError(BusinessException):
    def __init__(self, message: str, *, current: str | None = None, requested: str | None = None, order_number: str | None = None):
        super().__init__(
            code=PaymentCode.STATE_CONFLICT,
            message=message,
            error_type="StateConflictError",
            details={"current": current, "requested": requested, "order_number": order_number},
        )
        self.current = current
        self.requested = requested
