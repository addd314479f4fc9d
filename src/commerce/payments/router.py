"""Selects the payment provider an order asked for."""

import httpx
import structlog

from commerce.config import Settings
from commerce.errors import ProviderUnavailable
from commerce.payments.providers.mobilepay import MobilePayProvider
from commerce.payments.providers.mock import MockProvider
from commerce.payments.providers.port import PaymentProvider, ProviderInfo, ProviderType
from commerce.payments.providers.stripe import StripeProvider

logger = structlog.get_logger(__name__)


class PaymentRouter:
    def __init__(self, providers: list[PaymentProvider]) -> None:
        self._providers = {provider.provider_type: provider for provider in providers}

    @staticmethod
    def _parse(name) -> ProviderType | None:
        if isinstance(name, ProviderType):
            return name
        try:
            return ProviderType(str(name).lower())
        except ValueError:
            return None

    def is_available(self, name) -> bool:
        provider_type = self._parse(name)
        return provider_type is not None and provider_type in self._providers

    def get(self, name) -> PaymentProvider:
        provider_type = self._parse(name)
        if provider_type is None or provider_type not in self._providers:
            raise ProviderUnavailable(str(name))
        return self._providers[provider_type]

    def list_available_providers(self) -> list[ProviderInfo]:
        return [provider.info() for provider in self._providers.values()]


def build_payment_router(settings: Settings, transport: httpx.BaseTransport | None = None) -> PaymentRouter:
    """Instantiate every provider that is both listed and switched on."""
    providers: list[PaymentProvider] = []
    for name in settings.enabled_providers:
        if name == ProviderType.STRIPE.value and settings.stripe.enabled:
            providers.append(StripeProvider(settings.stripe))
        elif name == ProviderType.MOBILEPAY.value and settings.mobilepay.enabled:
            providers.append(MobilePayProvider(settings.mobilepay, settings.provider_timeout_seconds, transport))
        elif name == ProviderType.MOCK.value:
            providers.append(MockProvider())
        else:
            logger.warning("Payment provider listed but not enabled", provider=name)
            continue
        logger.info("Payment provider initialized", provider=name)
    return PaymentRouter(providers)
