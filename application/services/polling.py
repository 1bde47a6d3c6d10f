"""
Caller-driven re-polling of a charge until it reaches a settled outcome.

Nothing in the core retries on its own; hosts that want to wait for
settlement after an authorization callback call wait_for_settlement
explicitly. Attempts and backoff are bounded by PaymentSettings.retry.
"""
from __future__ import annotations

import logging
from typing import Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from application.dtos.payments import ApiResult
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.settings import PaymentRetry, payment_settings
from domain.payment.entity import Order, PaymentStatus


logger = get_logger(__name__)

# Statuses that may still change without operator action.
_UNSETTLED = {
    PaymentStatus.INITIALIZED,
    PaymentStatus.PENDING_EXTERNAL_SYSTEM,
    PaymentStatus.AUTHORIZED,
}


def should_poll_again(result: ApiResult) -> bool:
    if result.error is not None:
        return result.retryable
    return result.transaction_info is not None and result.transaction_info.payment_status in _UNSETTLED


async def wait_for_settlement(
    service: PaymentService,
    order: Order,
    *,
    retry: Optional[PaymentRetry] = None,
) -> ApiResult:
    """Poll fetch_status until the charge settles, fails or attempts run out.

    Returns the last result seen; the caller inspects its status.
    """
    policy = retry or payment_settings.retry
    retrying = AsyncRetrying(
        stop=stop_after_attempt(int(policy.max) + 1),
        wait=wait_exponential(multiplier=policy.base_backoff, min=policy.base_backoff, max=policy.max_backoff),
        retry=retry_if_result(should_poll_again),
        before_sleep=before_sleep_log(logging.getLogger(__name__), logging.INFO),
        reraise=True,
    )
    try:
        result = await retrying(service.fetch_status, order)
    except RetryError as exc:
        result = exc.last_attempt.result()
    logger.info(
        "payment_settlement_poll_finished",
        order_number=order.order_number,
        status=result.transaction_info.payment_status.value if result.transaction_info else None,
        error_type=result.error.error_type if result.error else None,
    )
    return result
