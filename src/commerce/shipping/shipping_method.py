"""Shipping methods offered at checkout."""

from protean import handle
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.shared.time import utc_now


@commerce.aggregate
class ShippingMethod:
    name = String(required=True, max_length=100)
    description = String(max_length=255)
    estimated_delivery_days = Integer(default=3, min_value=0)
    cost = Integer(required=True, min_value=0)  # minor units
    currency = String(max_length=3, default="USD")
    free_shipping_threshold = Integer(default=0, min_value=0)  # 0 = never free
    active = Boolean(default=True)
    created_at = DateTime()

    def deactivate(self):
        self.active = False


@commerce.command(part_of="ShippingMethod")
class CreateShippingMethod:
    name = String(required=True, max_length=100)
    description = String(max_length=255)
    estimated_delivery_days = Integer(default=3)
    cost = Integer(required=True, min_value=0)
    currency = String(max_length=3, default="USD")
    free_shipping_threshold = Integer(default=0)


@commerce.command(part_of="ShippingMethod")
class DeactivateShippingMethod:
    shipping_method_id = Identifier(required=True)


@commerce.command_handler(part_of=ShippingMethod)
class ShippingMethodHandler:
    @handle(CreateShippingMethod)
    def create_shipping_method(self, command):
        method = ShippingMethod(
            name=command.name,
            description=command.description,
            estimated_delivery_days=command.estimated_delivery_days,
            cost=command.cost,
            currency=(command.currency or "USD").upper(),
            free_shipping_threshold=command.free_shipping_threshold or 0,
            active=True,
            created_at=utc_now(),
        )
        current_domain.repository_for(ShippingMethod).add(method)
        return str(method.id)

    @handle(DeactivateShippingMethod)
    def deactivate_shipping_method(self, command):
        repo = current_domain.repository_for(ShippingMethod)
        method = repo.get(command.shipping_method_id)
        method.deactivate()
        repo.add(method)


def list_active_shipping_methods():
    return current_domain.repository_for(ShippingMethod)._dao.query.filter(active=True).all().items
