"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from commerce.domain import commerce


@commerce.event(part_of="Order")
class OrderPlaced:
    """A checkout was converted into an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    checkout_id = Identifier(required=True)
    user_id = Identifier()
    customer_email = String()
    items = Text(required=True)  # JSON array of line snapshots
    subtotal = Integer(required=True)
    shipping_cost = Integer(required=True)
    discount_amount = Integer(required=True)
    final_amount = Integer(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    reason = String()
    changed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderPaymentActionRequired:
    """The provider needs the customer to complete a redirect or step-up flow."""

    __version__ = 1

    order_id = Identifier(required=True)
    provider = String(required=True)
    action_url = String(required=True)
