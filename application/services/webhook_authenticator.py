"""
Webhook verification for gateway notifications.

signature = hex(hmac_sha256(webhook_secret, timestamp + id)), lowercase.

The parsed event is cached on a WebhookRequestContext that the HTTP layer
creates per inbound request and passes down explicitly, so the order
resolver and the callback processor can both read the same delivery
without parsing or verifying it twice.
"""
from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import ValidationError

from application.dtos.payments import WebhookEvent
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.payment.exceptions import (
    WebhookAuthenticationError,
    WebhookConfigurationError,
    WebhookPayloadError,
)


logger = get_logger(__name__)


def compute_signature(secret: str, timestamp: str, event_id: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), (timestamp + event_id).encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()


def verify_signature(secret: str, timestamp: str, event_id: str, signature: str) -> bool:
    expected = compute_signature(secret, timestamp, event_id)
    return hmac.compare_digest(expected.encode("ascii"), (signature or "").encode("utf-8"))


def authenticate(
    raw_body: bytes,
    declared_timestamp: str,
    declared_id: str,
    declared_signature: str,
    secret: Optional[str],
) -> WebhookEvent:
    """Verify a delivery and return the parsed event.

    Raises WebhookConfigurationError when no secret is configured,
    WebhookPayloadError when the body is not a webhook event and
    WebhookAuthenticationError when the signature does not match.
    """
    return _verified_event(_load_json(raw_body), raw_body, declared_timestamp, declared_id, declared_signature, secret)


def _verified_event(
    payload: dict[str, Any],
    raw_body: bytes,
    declared_timestamp: str,
    declared_id: str,
    declared_signature: str,
    secret: Optional[str],
) -> WebhookEvent:
    if not secret:
        raise WebhookConfigurationError("Webhook secret not configured")
    if not verify_signature(secret, declared_timestamp or "", declared_id or "", declared_signature or ""):
        raise WebhookAuthenticationError(details={"id": declared_id, "timestamp": declared_timestamp})
    try:
        event = WebhookEvent.model_validate({**payload, "raw_body": raw_body})
    except ValidationError as exc:
        raise WebhookPayloadError(
            "Webhook body is missing required fields",
            details={"errors": exc.errors(include_url=False, include_input=False)},
        ) from exc
    if event.id != declared_id or event.timestamp != declared_timestamp:
        # Signed material must be the same values the event carries.
        raise WebhookAuthenticationError(
            "Webhook signed fields do not match body",
            details={"id": declared_id, "timestamp": declared_timestamp},
        )
    return event


def _load_json(raw_body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(raw_body or b"")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise WebhookPayloadError("Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")
    return payload


@dataclass
class WebhookRequestContext:
    """Per-request holder for one webhook delivery. Never share across requests."""

    raw_body: bytes
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    event: Optional[WebhookEvent] = None
    failure: Optional[BusinessException] = None
    parse_count: int = 0


class WebhookAuthenticator:
    def __init__(self, secret: Optional[str]) -> None:
        self._secret = secret

    def read_event(self, ctx: WebhookRequestContext) -> WebhookEvent:
        """Return the verified event for this request, parsing at most once."""
        if ctx.event is not None:
            return ctx.event
        if ctx.failure is not None:
            raise ctx.failure

        ctx.parse_count += 1
        try:
            payload = _load_json(ctx.raw_body)
            event = _verified_event(
                payload,
                ctx.raw_body,
                str(payload.get("timestamp") or ""),
                str(payload.get("id") or ""),
                str(payload.get("signature") or ""),
                self._secret,
            )
        except WebhookAuthenticationError as exc:
            logger.warning(
                "webhook_signature_invalid",
                security_event=True,
                details=exc.details,
            )
            ctx.failure = exc
            raise
        except (WebhookPayloadError, WebhookConfigurationError) as exc:
            logger.error("webhook_rejected", error_type=exc.error_type, error=exc.message)
            ctx.failure = exc
            raise

        logger.info("webhook_verified", event_id=event.id, event_type=event.event_type)
        ctx.event = event
        return event
