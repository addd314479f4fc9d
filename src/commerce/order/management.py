"""Order status administration and order lookups."""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.order.order import Order
from commerce.shared.time import as_utc

logger = structlog.get_logger(__name__)


@commerce.command(part_of="Order")
class UpdateOrderStatus:
    """Privileged, explicit status change (fulfilment updates, manual cancellations)."""

    order_id = Identifier(required=True)
    status = String(required=True, max_length=50)
    reason = String(max_length=500)


@commerce.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.transition_to(command.status, reason=command.reason)
        repo.add(order)

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            status=order.status,
            changed=changed,
        )
        return order.status


def _sorted_newest_first(orders):
    return sorted(orders, key=lambda o: as_utc(o.created_at), reverse=True)


def list_orders(user_id=None, status=None, offset=0, limit=50):
    """Orders newest first, optionally scoped to a user and/or status."""
    criteria = {}
    if user_id:
        criteria["user_id"] = user_id
    if status:
        criteria["status"] = status

    repo = current_domain.repository_for(Order)
    query = repo._dao.query.filter(**criteria) if criteria else repo._dao.query
    orders = _sorted_newest_first(query.all().items)
    return orders[offset : offset + limit]


def find_order_by_payment_reference(payment_id):
    repo = current_domain.repository_for(Order)
    results = repo._dao.query.filter(payment_id=payment_id).all().items
    if not results:
        raise ObjectNotFoundError(f"No order with payment reference {payment_id}")
    return results[0]


def count_discount_uses(discount_id, user_id=None, email=None):
    """How many placed orders of this customer already used the discount."""
    if not (user_id or email):
        return 0

    repo = current_domain.repository_for(Order)
    orders = repo._dao.query.filter(discount_id=discount_id).all().items
    return sum(
        1
        for order in orders
        if (user_id and str(order.user_id) == str(user_id))
        or (email and (order.customer_email or "").lower() == email.lower())
    )
