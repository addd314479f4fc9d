import hashlib
import hmac
import os
import time

import pytest

from commerce.catalog.memory import InMemoryCatalog
from commerce.config import Settings
from commerce.identity import Identity
from commerce.notifier import Notifier
from commerce.shared.money import Money


@pytest.fixture(scope="session")
def _commerce_domain(request):
    """Initialize the commerce domain once per session."""
    os.environ["PROTEAN_ENV"] = request.config.option.env

    from commerce.domain import commerce

    commerce.init()
    return commerce


@pytest.fixture(scope="session", autouse=True)
def setup_db(_commerce_domain):
    from commerce.utils.db import drop_db, setup_db

    setup_db(_commerce_domain)

    yield

    drop_db(_commerce_domain)


@pytest.fixture(autouse=True)
def run_around_tests(_commerce_domain):
    """Push domain context before each test, cleanup after."""
    ctx = _commerce_domain.domain_context()
    ctx.push()

    yield

    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()
    ctx.pop()


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
class RecordingNotifier(Notifier):
    """Keeps every notification in memory; optionally fails on demand."""

    def __init__(self, fail=False):
        self.fail = fail
        self.confirmations = []
        self.shop_notifications = []
        self.recoveries = []

    def _maybe_fail(self):
        if self.fail:
            raise RuntimeError("mail server down")

    def send_order_confirmation(self, order):
        self._maybe_fail()
        self.confirmations.append(order.order_number)

    def send_order_notification(self, order):
        self._maybe_fail()
        self.shop_notifications.append(order.order_number)

    def send_checkout_recovery(self, checkout):
        self._maybe_fail()
        self.recoveries.append(str(checkout.id))


WIDGET = "prod-widget"
GADGET = "prod-gadget"


@pytest.fixture()
def settings():
    return Settings(environment="test", enabled_providers=("mock",), checkout_idle_minutes=60)


@pytest.fixture()
def catalog():
    catalog = InMemoryCatalog()
    catalog.add_product(WIDGET, Money(1999, "USD"), stock=10, name="Widget", weight=0.5, category_id="cat-tools")
    catalog.add_product(GADGET, Money(500, "USD"), stock=5, name="Gadget", weight=0.2, category_id="cat-toys")
    return catalog


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def container(settings, catalog, notifier):
    from commerce.wiring import build_container

    return build_container(settings, catalog=catalog, notifier=notifier)


@pytest.fixture()
def checkout_service(container):
    return container.checkout_service


@pytest.fixture()
def payment_service(container):
    return container.payment_service


@pytest.fixture()
def mock_provider(container):
    return container.payment_router.get("mock")


@pytest.fixture()
def sign_card():
    """Sign a body the way Stripe signs its webhook deliveries."""

    def _sign(body: bytes, secret: str, timestamp: int | None = None) -> str:
        timestamp = int(time.time()) if timestamp is None else timestamp
        digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return _sign


@pytest.fixture()
def shopper():
    return Identity.user("user-001")


@pytest.fixture()
def guest():
    return Identity.guest("session-001")


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
@pytest.fixture()
def shipping_method_id():
    from protean import current_domain

    from commerce.shipping.shipping_method import CreateShippingMethod

    return current_domain.process(
        CreateShippingMethod(name="Standard", cost=500, currency="USD", estimated_delivery_days=3),
        asynchronous=False,
    )


@pytest.fixture()
def save10_discount_id():
    from protean import current_domain

    from commerce.discount.management import CreateDiscount

    return current_domain.process(
        CreateDiscount(code="SAVE10", method="percentage", value=10, currency="USD"),
        asynchronous=False,
    )


@pytest.fixture()
def ready_checkout(checkout_service, shipping_method_id):
    """Return a builder filling an identity's checkout up to the point of placing the order."""

    def _build(identity, quantity=2, product_id=WIDGET, discount_code=None):
        checkout_service.add_item(identity, product_id, quantity)
        checkout_service.set_shipping_address(identity, street="1 Main St", city="Springfield", country="US")
        checkout_service.set_customer_details(identity, "Jane@Example.com", "Jane Doe")
        checkout_service.set_shipping_method(identity, shipping_method_id)
        if discount_code:
            checkout_service.apply_discount(identity, discount_code)
        return checkout_service.get_or_start(identity)

    return _build


@pytest.fixture()
def placed_order(checkout_service, ready_checkout, shopper):
    ready_checkout(shopper)
    return checkout_service.complete(shopper)
