"""Order aggregate: the durable record of a placed checkout.

Lines and monetary totals are frozen when the order is placed. After that
the only thing that moves is ``status`` (plus the payment reference fields
written alongside a status change). Captures and refunds are tracked as
PaymentTransaction rows, never by editing totals.

State Machine:
    pending → pending_action → paid → captured → shipped → delivered
    pending → paid
    cancelled from pending, pending_action, paid, captured, shipped
    refunded from paid, captured, shipped
    delivered, cancelled and refunded are terminal
"""

import json
from enum import Enum
from uuid import uuid4

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from commerce.discount.engine import AppliedDiscount
from commerce.domain import commerce
from commerce.errors import IllegalTransition
from commerce.order.events import OrderPaymentActionRequired, OrderPlaced, OrderStatusChanged
from commerce.shared.money import Money
from commerce.shared.time import utc_now


class OrderStatus(Enum):
    PENDING = "pending"
    PENDING_ACTION = "pending_action"
    PAID = "paid"
    CAPTURED = "captured"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PENDING_ACTION, OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PENDING_ACTION: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.CAPTURED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.CAPTURED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

# Progress order used to recognise late, out-of-order provider events
_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.PENDING_ACTION: 1,
    OrderStatus.PAID: 2,
    OrderStatus.CAPTURED: 3,
    OrderStatus.SHIPPED: 4,
    OrderStatus.DELIVERED: 5,
    OrderStatus.CANCELLED: 6,
    OrderStatus.REFUNDED: 7,
}

_TERMINAL = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})
REFUNDABLE_STATES = frozenset({OrderStatus.PAID, OrderStatus.CAPTURED, OrderStatus.SHIPPED})
CANCELLABLE_STATES = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.PENDING_ACTION,
        OrderStatus.PAID,
        OrderStatus.CAPTURED,
        OrderStatus.SHIPPED,
    }
)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


def is_behind(current: OrderStatus, target: OrderStatus) -> bool:
    """True when ``target`` is a state the order has already moved past."""
    return _RANK[target] < _RANK[current]


def forward_path(current: OrderStatus, target: OrderStatus):
    """Shortest chain of legal moves from ``current`` to ``target``, or None."""
    frontier = [(current, [])]
    seen = {current}
    while frontier:
        state, path = frontier.pop(0)
        for following in sorted(_VALID_TRANSITIONS[state], key=_RANK.get):
            if following in seen:
                continue
            if following == target:
                return path + [following]
            if following not in _TERMINAL:
                seen.add(following)
                frontier.append((following, path + [following]))
    return None


def generate_order_number(is_guest: bool, now=None) -> str:
    now = now or utc_now()
    prefix = "GS" if is_guest else "ORD"
    return f"{prefix}-{now:%Y%m%d}-{uuid4().hex[:8].upper()}"


@commerce.value_object(part_of="Order")
class OrderAddress:
    """Address as captured at checkout; later profile changes never touch it."""

    street = String(required=True, max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


@commerce.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(max_length=100)
    name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    line_total = Integer(required=True, min_value=0)
    weight = Float(default=0.0)


@commerce.aggregate
class Order:
    order_number = String(required=True, max_length=50)
    checkout_id = Identifier()
    user_id = Identifier()
    is_guest = Boolean(default=False)
    customer_email = String(max_length=255)
    customer_full_name = String(max_length=255)
    customer_phone = String(max_length=50)
    shipping_address = ValueObject(OrderAddress)
    billing_address = ValueObject(OrderAddress)
    items = HasMany(OrderItem)
    currency = String(max_length=3, default="USD")
    subtotal = Integer(default=0)
    shipping_cost = Integer(default=0)
    discount_amount = Integer(default=0)
    final_amount = Integer(default=0)
    total_weight = Float(default=0.0)
    shipping_method_id = Identifier()
    shipping_method_name = String(max_length=100)
    discount_id = Identifier()
    discount_code = String(max_length=50)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_provider = String(max_length=50)
    payment_method = String(max_length=50)
    payment_id = String(max_length=255)
    action_url = String(max_length=2000)
    created_at = DateTime()
    updated_at = DateTime()
    completed_at = DateTime()

    @invariant.post
    def final_amount_matches_components(self):
        expected = max((self.subtotal or 0) + (self.shipping_cost or 0) - (self.discount_amount or 0), 0)
        if self.final_amount != expected:
            raise ValidationError({"final_amount": ["Final amount must equal subtotal + shipping - discount"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(cls, checkout, order_number=None):
        """Build an order from a checkout snapshot. Totals are copied, not recomputed later."""
        now = utc_now()
        billing = checkout.billing_address or checkout.shipping_address
        order = cls(
            order_number=order_number or generate_order_number(checkout.is_guest, now),
            checkout_id=checkout.id,
            user_id=checkout.user_id,
            is_guest=checkout.is_guest,
            customer_email=checkout.customer_email,
            customer_full_name=checkout.customer_full_name,
            customer_phone=checkout.customer_phone,
            shipping_address=OrderAddress(**_address_dict(checkout.shipping_address)),
            billing_address=OrderAddress(**_address_dict(billing)),
            currency=checkout.currency,
            subtotal=checkout.subtotal,
            shipping_cost=checkout.shipping_cost,
            discount_amount=checkout.discount_amount,
            final_amount=checkout.final_amount,
            total_weight=checkout.total_weight,
            shipping_method_id=checkout.shipping_method_id,
            shipping_method_name=checkout.shipping_method_name,
            discount_id=checkout.discount_id,
            discount_code=checkout.discount_code,
            payment_provider=checkout.payment_provider,
            status=OrderStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        for item in checkout.items:
            order.add_items(
                OrderItem(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    sku=item.sku,
                    name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                    weight=item.weight,
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=order.id,
                order_number=order.order_number,
                checkout_id=checkout.id,
                user_id=checkout.user_id,
                customer_email=checkout.customer_email,
                items=json.dumps(
                    [
                        {
                            "product_id": str(item.product_id),
                            "variant_id": str(item.variant_id) if item.variant_id else None,
                            "quantity": item.quantity,
                            "unit_price": item.unit_price,
                        }
                        for item in order.items
                    ]
                ),
                subtotal=order.subtotal,
                shipping_cost=order.shipping_cost,
                discount_amount=order.discount_amount,
                final_amount=order.final_amount,
                currency=order.currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Money views
    # -------------------------------------------------------------------
    @property
    def total(self) -> Money:
        return Money(self.final_amount or 0, self.currency)

    @property
    def applied_discount(self) -> AppliedDiscount | None:
        if not self.discount_id:
            return None
        return AppliedDiscount(
            discount_id=str(self.discount_id),
            code=self.discount_code,
            amount=Money(self.discount_amount or 0, self.currency),
        )

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    def _move(self, target: OrderStatus, reason=None):
        previous = self.status
        now = utc_now()
        self.status = target.value
        self.updated_at = now
        if target == OrderStatus.DELIVERED:
            self.completed_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=self.id,
                order_number=self.order_number,
                from_status=previous,
                to_status=target.value,
                reason=reason,
                changed_at=now,
            )
        )

    def transition_to(self, target, reason=None) -> bool:
        """Move to ``target``. Same state is a no-op (False); anything off-table raises."""
        target = OrderStatus(target)
        current = OrderStatus(self.status)
        if target == current:
            return False
        if not can_transition(current, target):
            raise IllegalTransition({"status": [f"Cannot transition from {current.value} to {target.value}"]})
        self._move(target, reason)
        return True

    def reconcile_to(self, target, reason=None) -> bool:
        """Like ``transition_to``, tolerant of provider event ordering.

        A late event for a state already passed is a no-op. An event that skips
        ahead (captured before authorized) walks the intermediate states.
        """
        target = OrderStatus(target)
        current = OrderStatus(self.status)
        if target == current or is_behind(current, target):
            return False

        path = forward_path(current, target)
        if path is None:
            raise IllegalTransition({"status": [f"Cannot transition from {current.value} to {target.value}"]})
        for step in path:
            self._move(step, reason)
        return True

    # -------------------------------------------------------------------
    # Payment bookkeeping
    # -------------------------------------------------------------------
    def record_payment_reference(self, provider, payment_id, payment_method=None):
        self.payment_provider = provider
        self.payment_id = payment_id
        if payment_method:
            self.payment_method = payment_method
        self.updated_at = utc_now()

    def require_action(self, provider, action_url):
        """Park the order while the customer completes a provider redirect."""
        self.action_url = action_url
        self.transition_to(OrderStatus.PENDING_ACTION, reason="Payment requires customer action")
        self.raise_(OrderPaymentActionRequired(order_id=self.id, provider=provider, action_url=action_url))


def _address_dict(address):
    return {
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "postal_code": address.postal_code,
        "country": address.country,
    }
