"""Discount codes on a checkout: apply, remove and re-price after changes."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from commerce.checkout.checkout import Checkout
from commerce.discount.discount import Discount
from commerce.discount.engine import AppliedDiscount, compute_amount, validate
from commerce.discount.management import find_discount_by_code
from commerce.domain import commerce
from commerce.order.management import count_discount_uses

logger = structlog.get_logger(__name__)


def _customer_usage(checkout, discount):
    return count_discount_uses(discount.id, user_id=checkout.user_id, email=checkout.customer_email)


def refresh_discount(checkout):
    """Recompute the applied discount from scratch, dropping it if it no longer holds."""
    if not checkout.discount_id:
        return

    try:
        discount = current_domain.repository_for(Discount).get(checkout.discount_id)
    except ObjectNotFoundError:
        checkout.remove_discount(reason="Discount no longer exists")
        return

    snapshot = checkout.snapshot()
    result = validate(discount, snapshot, customer_usage=_customer_usage(checkout, discount))
    if not result:
        logger.info(
            "Dropping discount that no longer applies",
            checkout_id=str(checkout.id),
            code=discount.code,
            reason=result.reason,
        )
        checkout.remove_discount(reason=result.reason)
        return

    checkout.reprice_discount(compute_amount(discount, snapshot))


@commerce.command(part_of="Checkout")
class ApplyDiscount:
    checkout_id = Identifier(required=True)
    code = String(required=True, max_length=50)


@commerce.command(part_of="Checkout")
class RemoveDiscount:
    checkout_id = Identifier(required=True)


@commerce.command_handler(part_of=Checkout)
class CheckoutDiscountHandler:
    @handle(ApplyDiscount)
    def apply_discount(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)

        try:
            discount = find_discount_by_code(command.code)
        except ObjectNotFoundError:
            raise ValidationError({"discount_code": ["Invalid discount code"]}) from None

        snapshot = checkout.snapshot()
        result = validate(discount, snapshot, customer_usage=_customer_usage(checkout, discount))
        if not result:
            raise ValidationError({"discount_code": [result.reason]})

        checkout.apply_discount(
            AppliedDiscount(
                discount_id=str(discount.id),
                code=discount.code,
                amount=compute_amount(discount, snapshot),
            )
        )
        repo.add(checkout)

    @handle(RemoveDiscount)
    def remove_discount(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.remove_discount(reason="Removed by shopper")
        repo.add(checkout)
