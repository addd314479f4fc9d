"""Checkout application service.

Collaborators (catalog, currency converter, payment router, notifier) are
consulted here, outside any unit of work. What they return is handed to the
checkout commands, whose handlers own the transaction.
"""

import json
from dataclasses import dataclass, field
from datetime import timedelta

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from commerce.catalog.port import StockLine
from commerce.checkout.checkout import Checkout
from commerce.checkout.conversion import PlaceOrder, line_key
from commerce.checkout.details import (
    ExtendCheckoutExpiry,
    SetBillingAddress,
    SetCustomerDetails,
    SetPaymentProvider,
    SetShippingAddress,
    SetShippingMethod,
)
from commerce.checkout.discounts import ApplyDiscount, RemoveDiscount
from commerce.checkout.items import AddCheckoutItem, ClearCheckout, RemoveCheckoutItem, UpdateCheckoutItem
from commerce.checkout.recovery import AbandonCheckout, ExpireCheckout, sweep_candidates
from commerce.checkout.session import MergeCheckouts, StartCheckout, find_open_checkout
from commerce.errors import InsufficientStock
from commerce.notifier import notify_safely
from commerce.order.order import Order
from commerce.shared.time import utc_now
from commerce.utils.locks import KeyedLock

logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    abandoned: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    recovery_sent: int = 0


class CheckoutService:
    def __init__(self, catalog, settings, notifier, payment_router, converter=None, locks=None):
        self.catalog = catalog
        self.settings = settings
        self.notifier = notifier
        self.payment_router = payment_router
        self.converter = converter
        self.locks = locks or KeyedLock()

    # -------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------
    def _process(self, command):
        return current_domain.process(command, asynchronous=False)

    def _load(self, checkout_id) -> Checkout:
        return current_domain.repository_for(Checkout).get(checkout_id)

    def get_or_start(self, identity) -> Checkout:
        checkout = find_open_checkout(user_id=identity.user_id, session_id=identity.session_id)
        if checkout is not None:
            return checkout

        checkout_id = self._process(
            StartCheckout(
                user_id=identity.user_id,
                session_id=None if identity.user_id else identity.session_id,
                currency=self.settings.default_currency,
                ttl_hours=self.settings.checkout_ttl_hours,
            )
        )
        logger.info("Checkout started", checkout_id=checkout_id, guest=identity.is_guest)
        return self._load(checkout_id)

    def get_owned(self, identity, checkout_id) -> Checkout:
        """Load a checkout by id, hiding checkouts that belong to someone else."""
        checkout = self._load(checkout_id)
        if identity.user_id:
            owned = str(checkout.user_id) == str(identity.user_id)
        else:
            owned = checkout.session_id == identity.session_id
        if not owned:
            raise ObjectNotFoundError(f"Checkout {checkout_id} not found")
        return checkout

    # -------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------
    def _price_in(self, product, currency) -> int:
        if product.price.currency == currency:
            return product.price.amount
        if self.converter is None:
            raise ValidationError({"currency": [f"Product is priced in {product.price.currency}, not {currency}"]})
        return self.converter.convert(product.price, currency).amount

    def _ensure_stock(self, product_id, variant_id, quantity):
        if not self.catalog.check_stock(product_id, variant_id, quantity):
            raise InsufficientStock({"quantity": [f"Insufficient stock for product {product_id}"]})

    def add_item(self, identity, product_id, quantity, variant_id=None) -> Checkout:
        checkout = self.get_or_start(identity)
        product = self.catalog.get_product(product_id, variant_id)
        if not product.active:
            raise ValidationError({"product_id": ["Product is not available"]})

        existing = checkout.find_item(product_id, variant_id)
        self._ensure_stock(product_id, variant_id, quantity + (existing.quantity if existing else 0))

        self._process(
            AddCheckoutItem(
                checkout_id=checkout.id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                unit_price=self._price_in(product, checkout.currency),
                sku=product.sku,
                name=product.name,
                weight=product.weight,
                category_id=product.category_id,
            )
        )
        return self._load(checkout.id)

    def update_item(self, identity, product_id, quantity, variant_id=None) -> Checkout:
        checkout = self.get_or_start(identity)
        unit_price = None
        if quantity > 0:
            self._ensure_stock(product_id, variant_id, quantity)
            unit_price = self._price_in(self.catalog.get_product(product_id, variant_id), checkout.currency)

        self._process(
            UpdateCheckoutItem(
                checkout_id=checkout.id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                unit_price=unit_price,
            )
        )
        return self._load(checkout.id)

    def remove_item(self, identity, product_id, variant_id=None) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(RemoveCheckoutItem(checkout_id=checkout.id, product_id=product_id, variant_id=variant_id))
        return self._load(checkout.id)

    def clear(self, identity) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(ClearCheckout(checkout_id=checkout.id))
        return self._load(checkout.id)

    # -------------------------------------------------------------------
    # Details
    # -------------------------------------------------------------------
    def set_shipping_address(self, identity, **address) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(SetShippingAddress(checkout_id=checkout.id, **address))
        return self._load(checkout.id)

    def set_billing_address(self, identity, **address) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(SetBillingAddress(checkout_id=checkout.id, **address))
        return self._load(checkout.id)

    def set_customer_details(self, identity, email, full_name, phone=None) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(SetCustomerDetails(checkout_id=checkout.id, email=email, full_name=full_name, phone=phone))
        return self._load(checkout.id)

    def set_shipping_method(self, identity, shipping_method_id) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(SetShippingMethod(checkout_id=checkout.id, shipping_method_id=shipping_method_id))
        return self._load(checkout.id)

    def set_payment_provider(self, identity, provider) -> Checkout:
        if not self.payment_router.is_available(provider):
            raise ValidationError({"payment_provider": [f"Payment provider {provider} is not available"]})
        checkout = self.get_or_start(identity)
        self._process(SetPaymentProvider(checkout_id=checkout.id, provider=provider.lower()))
        return self._load(checkout.id)

    def extend_expiry(self, identity, hours) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(ExtendCheckoutExpiry(checkout_id=checkout.id, hours=hours))
        return self._load(checkout.id)

    # -------------------------------------------------------------------
    # Discounts
    # -------------------------------------------------------------------
    def apply_discount(self, identity, code) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(ApplyDiscount(checkout_id=checkout.id, code=code))
        return self._load(checkout.id)

    def remove_discount(self, identity) -> Checkout:
        checkout = self.get_or_start(identity)
        self._process(RemoveDiscount(checkout_id=checkout.id))
        return self._load(checkout.id)

    # -------------------------------------------------------------------
    # Login merge
    # -------------------------------------------------------------------
    def merge(self, user_id, session_id) -> Checkout | None:
        checkout_id = self._process(MergeCheckouts(user_id=user_id, session_id=session_id))
        return self._load(checkout_id) if checkout_id else None

    # -------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------
    def _catalog_state(self, checkout):
        """Current prices and the lines the catalog can no longer cover."""
        prices, out_of_stock = {}, []
        for item in checkout.items:
            key = line_key(item.product_id, item.variant_id)
            variant_id = str(item.variant_id) if item.variant_id else None
            try:
                product = self.catalog.get_product(str(item.product_id), variant_id)
            except ObjectNotFoundError:
                out_of_stock.append(key)
                continue

            prices[key] = self._price_in(product, checkout.currency)
            if not product.active or not self.catalog.check_stock(str(item.product_id), variant_id, item.quantity):
                out_of_stock.append(key)
        return prices, out_of_stock

    def _reserve_stock(self, checkout) -> list[StockLine]:
        lines = [
            StockLine(str(item.product_id), str(item.variant_id) if item.variant_id else None, item.quantity)
            for item in checkout.items
        ]
        if not self.catalog.reserve_stock(lines):
            logger.info("Stock taken by another order", checkout_id=str(checkout.id))
            raise InsufficientStock({"items": ["Stock ran out while placing the order"]})
        return lines

    def complete(self, identity, checkout_id=None) -> Order:
        """Convert the shopper's checkout into an order, at most once."""
        if checkout_id:
            checkout = self.get_owned(identity, checkout_id)
        else:
            checkout = find_open_checkout(user_id=identity.user_id, session_id=identity.session_id)
            if checkout is None:
                raise ObjectNotFoundError("No open checkout to complete")

        with self.locks.hold(str(checkout.id)):
            checkout = self._load(checkout.id)
            already_converted = bool(checkout.converted_order_id)
            prices, out_of_stock = ({}, []) if already_converted else self._catalog_state(checkout)
            reserved = [] if already_converted or out_of_stock else self._reserve_stock(checkout)

            try:
                order_id = self._process(
                    PlaceOrder(
                        checkout_id=checkout.id,
                        current_prices=json.dumps(prices),
                        out_of_stock=json.dumps(out_of_stock),
                    )
                )
            except Exception:
                self.catalog.release_stock(reserved)
                raise

        order = current_domain.repository_for(Order).get(order_id)
        if not already_converted:
            notify_safely("order_confirmation", self.notifier.send_order_confirmation, order)
            notify_safely("order_notification", self.notifier.send_order_notification, order)
        return order

    # -------------------------------------------------------------------
    # Idle sweep
    # -------------------------------------------------------------------
    def sweep(self, now=None) -> SweepReport:
        now = now or utc_now()
        idle_cutoff = now - timedelta(minutes=self.settings.checkout_idle_minutes)
        to_expire, to_abandon = sweep_candidates(idle_cutoff, now)
        report = SweepReport()

        for checkout in to_expire:
            try:
                self._process(ExpireCheckout(checkout_id=checkout.id))
            except (ValidationError, ObjectNotFoundError) as exc:
                logger.warning("Could not expire checkout", checkout_id=str(checkout.id), error=str(exc))
                report.failed.append(str(checkout.id))
            else:
                report.expired.append(str(checkout.id))

        for checkout in to_abandon:
            try:
                self._process(AbandonCheckout(checkout_id=checkout.id))
            except (ValidationError, ObjectNotFoundError) as exc:
                logger.warning("Could not abandon checkout", checkout_id=str(checkout.id), error=str(exc))
                report.failed.append(str(checkout.id))
                continue

            report.abandoned.append(str(checkout.id))
            if checkout.customer_email and checkout.items:
                if notify_safely("checkout_recovery", self.notifier.send_checkout_recovery, checkout):
                    report.recovery_sent += 1

        logger.info(
            "Checkout sweep finished",
            abandoned=len(report.abandoned),
            expired=len(report.expired),
            failed=len(report.failed),
        )
        return report
