"""Process-wide read-only settings.

Built once at startup from the environment and handed to every component
that needs provider credentials or checkout timing. Nothing mutates it
after construction.
"""

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(name, default)
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class StripeSettings:
    enabled: bool = False
    secret_key: str = ""
    webhook_secret: str = ""
    signature_tolerance_seconds: int = 300


@dataclass(frozen=True)
class MobilePaySettings:
    enabled: bool = False
    client_id: str = ""
    client_secret: str = ""
    subscription_key: str = ""
    merchant_serial_number: str = ""
    base_url: str = "https://apitest.vipps.no"
    return_url: str = "http://localhost:8000/payment/complete"
    webhook_secret: str = ""


@dataclass(frozen=True)
class Settings:
    environment: str = "development"
    default_currency: str = "USD"
    enabled_providers: tuple[str, ...] = ("mock",)
    provider_timeout_seconds: float = 10.0
    checkout_idle_minutes: int = 60
    checkout_ttl_hours: int = 24
    exchange_rate_url: str = ""
    exchange_rate_ttl_seconds: int = 3600
    stripe: StripeSettings = field(default_factory=StripeSettings)
    mobilepay: MobilePaySettings = field(default_factory=MobilePaySettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def provider_enabled(self, name: str) -> bool:
        return name.lower() in self.enabled_providers

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from ``COMMERCE_*``, ``STRIPE_*`` and ``MOBILEPAY_*`` variables."""
        enabled = _env_list("COMMERCE_PAYMENT_PROVIDERS", "mock")
        return cls(
            environment=(os.getenv("PROTEAN_ENV") or os.getenv("ENVIRONMENT") or "development").lower(),
            default_currency=os.getenv("COMMERCE_DEFAULT_CURRENCY", "USD").upper(),
            enabled_providers=enabled,
            provider_timeout_seconds=float(os.getenv("COMMERCE_PROVIDER_TIMEOUT", "10")),
            checkout_idle_minutes=int(os.getenv("COMMERCE_CHECKOUT_IDLE_MINUTES", "60")),
            checkout_ttl_hours=int(os.getenv("COMMERCE_CHECKOUT_TTL_HOURS", "24")),
            exchange_rate_url=os.getenv("COMMERCE_EXCHANGE_RATE_URL", ""),
            exchange_rate_ttl_seconds=int(os.getenv("COMMERCE_EXCHANGE_RATE_TTL", "3600")),
            stripe=StripeSettings(
                enabled=_env_bool("STRIPE_ENABLED", "stripe" in enabled),
                secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
                webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            ),
            mobilepay=MobilePaySettings(
                enabled=_env_bool("MOBILEPAY_ENABLED", "mobilepay" in enabled),
                client_id=os.getenv("MOBILEPAY_CLIENT_ID", ""),
                client_secret=os.getenv("MOBILEPAY_CLIENT_SECRET", ""),
                subscription_key=os.getenv("MOBILEPAY_SUBSCRIPTION_KEY", ""),
                merchant_serial_number=os.getenv("MOBILEPAY_MERCHANT_SERIAL_NUMBER", ""),
                base_url=os.getenv("MOBILEPAY_BASE_URL", "https://apitest.vipps.no"),
                return_url=os.getenv("MOBILEPAY_RETURN_URL", "http://localhost:8000/payment/complete"),
                webhook_secret=os.getenv("MOBILEPAY_WEBHOOK_SECRET", ""),
            ),
        )
