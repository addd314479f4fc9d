"""Domain events for the Checkout aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="Checkout")
class CheckoutStarted:
    """A shopper's first cart interaction created a checkout."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    user_id = Identifier()
    session_id = String()
    currency = String(required=True)
    expires_at = DateTime(required=True)


@commerce.event(part_of="Checkout")
class CheckoutItemAdded:
    __version__ = 1

    checkout_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    unit_price = Integer(required=True)


@commerce.event(part_of="Checkout")
class CheckoutItemUpdated:
    __version__ = 1

    checkout_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@commerce.event(part_of="Checkout")
class CheckoutItemRemoved:
    __version__ = 1

    checkout_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()


@commerce.event(part_of="Checkout")
class CheckoutDiscountApplied:
    __version__ = 1

    checkout_id = Identifier(required=True)
    discount_id = Identifier(required=True)
    code = String(required=True)
    amount = Integer(required=True)


@commerce.event(part_of="Checkout")
class CheckoutDiscountRemoved:
    __version__ = 1

    checkout_id = Identifier(required=True)
    code = String(required=True)
    reason = String()


@commerce.event(part_of="Checkout")
class CheckoutsMerged:
    """A guest checkout's items were folded into a user's checkout."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    guest_checkout_id = Identifier(required=True)
    user_id = Identifier(required=True)
    items_merged_count = Integer(required=True)


@commerce.event(part_of="Checkout")
class CheckoutCompleted:
    __version__ = 1

    checkout_id = Identifier(required=True)
    order_id = Identifier(required=True)
    final_amount = Integer(required=True)
    currency = String(required=True)
    completed_at = DateTime(required=True)


@commerce.event(part_of="Checkout")
class CheckoutAbandoned:
    __version__ = 1

    checkout_id = Identifier(required=True)
    customer_email = String()
    last_activity_at = DateTime()


@commerce.event(part_of="Checkout")
class CheckoutExpired:
    __version__ = 1

    checkout_id = Identifier(required=True)
    expired_at = DateTime(required=True)
