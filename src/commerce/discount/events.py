"""Domain events for the Discount aggregate."""

from protean.fields import Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="Discount")
class DiscountCreated:
    __version__ = 1

    discount_id = Identifier(required=True)
    code = String(required=True)
    method = String(required=True)
    value = Integer(required=True)


@commerce.event(part_of="Discount")
class DiscountDeactivated:
    __version__ = 1

    discount_id = Identifier(required=True)
    code = String(required=True)


@commerce.event(part_of="Discount")
class DiscountUsed:
    """A placed order redeemed the discount."""

    __version__ = 1

    discount_id = Identifier(required=True)
    code = String(required=True)
    order_id = Identifier(required=True)
    current_usage = Integer(required=True)
