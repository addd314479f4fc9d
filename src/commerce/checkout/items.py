"""Checkout line management: commands and handler.

Prices, weights and categories arrive already resolved from the catalog;
the handler only applies them to the aggregate.
"""

from protean import handle
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from commerce.checkout.checkout import Checkout
from commerce.checkout.discounts import refresh_discount
from commerce.domain import commerce


@commerce.command(part_of="Checkout")
class AddCheckoutItem:
    checkout_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    sku = String(max_length=100)
    name = String(max_length=255)
    weight = Float(default=0.0)
    category_id = Identifier()


@commerce.command(part_of="Checkout")
class UpdateCheckoutItem:
    checkout_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True, min_value=0)
    unit_price = Integer(min_value=0)


@commerce.command(part_of="Checkout")
class RemoveCheckoutItem:
    checkout_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()


@commerce.command(part_of="Checkout")
class ClearCheckout:
    checkout_id = Identifier(required=True)


@commerce.command_handler(part_of=Checkout)
class ManageCheckoutItemsHandler:
    @handle(AddCheckoutItem)
    def add_item(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.add_item(
            product_id=command.product_id,
            variant_id=command.variant_id,
            quantity=command.quantity,
            unit_price=command.unit_price,
            sku=command.sku,
            name=command.name,
            weight=command.weight,
            category_id=command.category_id,
        )
        refresh_discount(checkout)
        repo.add(checkout)

    @handle(UpdateCheckoutItem)
    def update_item(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.update_item_quantity(
            product_id=command.product_id,
            variant_id=command.variant_id,
            quantity=command.quantity,
            unit_price=command.unit_price,
        )
        refresh_discount(checkout)
        repo.add(checkout)

    @handle(RemoveCheckoutItem)
    def remove_item(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.remove_item(product_id=command.product_id, variant_id=command.variant_id)
        refresh_discount(checkout)
        repo.add(checkout)

    @handle(ClearCheckout)
    def clear(self, command):
        repo = current_domain.repository_for(Checkout)
        checkout = repo.get(command.checkout_id)
        checkout.clear()
        repo.add(checkout)
