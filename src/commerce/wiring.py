"""Process-start dependency wiring.

Components are built leaves first and never modified afterwards. Payment
providers and webhook ingestion share the read-only ``Settings`` rather than
referring to each other.
"""

from dataclasses import dataclass

import httpx
import structlog

from commerce.catalog.memory import InMemoryCatalog
from commerce.catalog.port import Catalog
from commerce.checkout.service import CheckoutService
from commerce.config import Settings
from commerce.notifier import LoggingNotifier, Notifier
from commerce.payments.router import PaymentRouter, build_payment_router
from commerce.payments.service import PaymentService
from commerce.shared.currency import CurrencyConverter, HttpExchangeRateFeed, StaticExchangeRateFeed
from commerce.webhooks.ingestion import WebhookIngestion

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Container:
    settings: Settings
    catalog: Catalog
    notifier: Notifier
    converter: CurrencyConverter
    payment_router: PaymentRouter
    checkout_service: CheckoutService
    payment_service: PaymentService
    webhook_ingestion: WebhookIngestion


def build_container(
    settings: Settings | None = None,
    catalog: Catalog | None = None,
    notifier: Notifier | None = None,
    transport: httpx.BaseTransport | None = None,
) -> Container:
    settings = settings or Settings.from_env()
    catalog = catalog or InMemoryCatalog()
    notifier = notifier or LoggingNotifier()

    if settings.exchange_rate_url:
        feed = HttpExchangeRateFeed(settings.exchange_rate_url, settings.provider_timeout_seconds, transport)
    else:
        feed = StaticExchangeRateFeed()
    converter = CurrencyConverter(feed, settings.default_currency, settings.exchange_rate_ttl_seconds)

    payment_router = build_payment_router(settings, transport)
    checkout_service = CheckoutService(catalog, settings, notifier, payment_router, converter)
    payment_service = PaymentService(payment_router)
    webhook_ingestion = WebhookIngestion(settings)

    logger.info(
        "Container built",
        environment=settings.environment,
        providers=[info.type.value for info in payment_router.list_available_providers()],
    )
    return Container(
        settings=settings,
        catalog=catalog,
        notifier=notifier,
        converter=converter,
        payment_router=payment_router,
        checkout_service=checkout_service,
        payment_service=payment_service,
        webhook_ingestion=webhook_ingestion,
    )
