"""Checkout → Order conversion.

Runs inside a single unit of work: the checkout is re-read, an existing
conversion is returned as-is, current catalog prices and stock (read by the
caller under the per-checkout lock) are compared against the checkout lines,
and the order, the completed checkout and the discount usage are committed
together.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, Text
from protean.utils.globals import current_domain

from commerce.checkout.checkout import Checkout
from commerce.discount.discount import Discount
from commerce.discount.engine import compute_amount, validate
from commerce.domain import commerce
from commerce.errors import InsufficientStock, StalePricing
from commerce.order.management import count_discount_uses
from commerce.order.order import Order

logger = structlog.get_logger(__name__)


def line_key(product_id, variant_id=None) -> str:
    return f"{product_id}|{variant_id or ''}"


@commerce.command(part_of="Checkout")
class PlaceOrder:
    checkout_id = Identifier(required=True)
    current_prices = Text()  # JSON {line_key: minor units}
    out_of_stock = Text()  # JSON [line_key, ...]


def _verify_catalog_state(checkout, current_prices, out_of_stock):
    stale = [
        str(item.product_id)
        for item in checkout.items
        if line_key(item.product_id, item.variant_id) in current_prices
        and current_prices[line_key(item.product_id, item.variant_id)] != item.unit_price
    ]
    if stale:
        raise StalePricing({"items": [f"Price changed for product {product_id}" for product_id in stale]})

    short = [
        str(item.product_id) for item in checkout.items if line_key(item.product_id, item.variant_id) in out_of_stock
    ]
    if short:
        raise InsufficientStock({"items": [f"Insufficient stock for product {product_id}" for product_id in short]})


def _redeem_discount(checkout):
    """Re-validate the applied discount; return it so usage can be counted."""
    if not checkout.discount_id:
        return None

    try:
        discount = current_domain.repository_for(Discount).get(checkout.discount_id)
    except ObjectNotFoundError:
        raise ValidationError({"discount_code": ["Discount no longer exists"]}) from None

    usage = count_discount_uses(discount.id, user_id=checkout.user_id, email=checkout.customer_email)
    result = validate(discount, checkout.snapshot(), customer_usage=usage)
    if not result:
        raise ValidationError({"discount_code": [result.reason]})

    checkout.reprice_discount(compute_amount(discount, checkout.snapshot()))
    return discount


@commerce.command_handler(part_of=Checkout)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        checkout_repo = current_domain.repository_for(Checkout)
        checkout = checkout_repo.get(command.checkout_id)

        if checkout.converted_order_id:
            logger.info(
                "Checkout already converted",
                checkout_id=str(checkout.id),
                order_id=str(checkout.converted_order_id),
            )
            return str(checkout.converted_order_id)

        checkout.ensure_ready_for_order()
        _verify_catalog_state(
            checkout,
            json.loads(command.current_prices) if command.current_prices else {},
            set(json.loads(command.out_of_stock)) if command.out_of_stock else set(),
        )
        discount = _redeem_discount(checkout)

        order = Order.place(checkout)
        checkout.mark_completed(order.id)

        current_domain.repository_for(Order).add(order)
        checkout_repo.add(checkout)
        if discount is not None:
            discount.increment_usage(order.id)
            current_domain.repository_for(Discount).add(discount)

        logger.info(
            "Order placed from checkout",
            checkout_id=str(checkout.id),
            order_id=str(order.id),
            order_number=order.order_number,
            final_amount=order.final_amount,
            currency=order.currency,
        )
        return str(order.id)
