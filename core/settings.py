"""
Payment-related settings using pydantic-settings v2 with nested env keys.

PaymentSettings is loaded once from the environment; the payment core only
ever sees the immutable GatewayConfig it produces.
"""
from __future__ import annotations

from typing import Optional, Union
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentTimeouts(BaseModel):
    connect: float = 5.0
    read: float = 30.0
    write: float = 30.0
    total: float = 30.0


class PaymentRetry(BaseModel):
    """Bounded re-polling used by callers waiting for settlement."""
    max: int = 3
    base_backoff: float = 1.0
    max_backoff: float = 30.0


class ReepaySettings(BaseModel):
    private_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_base_url: str = "https://api.reepay.com"
    checkout_api_base_url: str = "https://checkout-api.reepay.com"
    checkout_script_url: str = "https://checkout.reepay.com/checkout.js"
    locale: Optional[str] = None
    # str allowed so REEPAY__PAYMENT_METHODS=card,mobilepay is not JSON-decoded
    payment_methods: Union[str, list[str]] = Field(default_factory=list)
    continue_url: Optional[str] = None
    cancel_url: Optional[str] = None
    error_url: Optional[str] = None
    session_ttl_seconds: int = 24 * 60 * 60

    @field_validator("payment_methods", mode="before")
    @classmethod
    def _split_payment_methods(cls, v):
        """Accept "card,mobilepay" as well as a list."""
        if v is None:
            return []
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


class GatewayConfig(BaseModel):
    """Immutable per-invocation gateway configuration."""

    model_config = ConfigDict(frozen=True)

    private_key: str
    webhook_secret: Optional[str] = None
    api_base_url: str = "https://api.reepay.com"
    checkout_api_base_url: str = "https://checkout-api.reepay.com"
    checkout_script_url: str = "https://checkout.reepay.com/checkout.js"
    locale: Optional[str] = None
    payment_methods: tuple[str, ...] = ()
    continue_url: Optional[str] = None
    cancel_url: Optional[str] = None
    error_url: Optional[str] = None
    session_ttl_seconds: int = 24 * 60 * 60
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)

    @field_validator("payment_methods", mode="before")
    @classmethod
    def _clean_payment_methods(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            v = v.split(",")
        return tuple(item.strip() for item in v if item and item.strip())


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    reepay: ReepaySettings = Field(default_factory=ReepaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    def gateway_config(self) -> GatewayConfig:
        if not self.reepay.private_key:
            raise RuntimeError("REEPAY__PRIVATE_KEY not configured")
        return GatewayConfig(
            private_key=self.reepay.private_key,
            webhook_secret=self.reepay.webhook_secret,
            api_base_url=self.reepay.api_base_url,
            checkout_api_base_url=self.reepay.checkout_api_base_url,
            checkout_script_url=self.reepay.checkout_script_url,
            locale=self.reepay.locale,
            payment_methods=self.reepay.payment_methods,
            continue_url=self.reepay.continue_url,
            cancel_url=self.reepay.cancel_url,
            error_url=self.reepay.error_url,
            session_ttl_seconds=self.reepay.session_ttl_seconds,
            timeouts=self.timeouts,
        )


payment_settings = PaymentSettings()
