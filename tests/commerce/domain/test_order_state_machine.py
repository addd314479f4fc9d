"""Domain tests for the Order aggregate and its status transitions."""

import re

import pytest
from protean.exceptions import ValidationError

from commerce.checkout.checkout import Checkout
from commerce.discount.engine import AppliedDiscount
from commerce.errors import IllegalTransition
from commerce.order.order import (
    Order,
    OrderStatus,
    can_transition,
    forward_path,
    generate_order_number,
    is_behind,
)
from commerce.shared.money import Money


def _checkout(user_id="user-001", session_id=None):
    checkout = Checkout.create(user_id=user_id, session_id=session_id)
    checkout.add_item("p1", 2, 1999, name="Widget", sku="W-1")
    checkout.set_shipping_address(street="1 Main St", country="US", city="Springfield")
    checkout.set_customer_details("jane@example.com", "Jane Doe")
    checkout.set_shipping_method("ship-1", "Standard", 500)
    checkout.apply_discount(AppliedDiscount("disc-1", "SAVE10", Money(400, "USD")))
    return checkout


def _order(status=OrderStatus.PENDING):
    order = Order.place(_checkout())
    order.status = status.value
    return order


class TestOrderPlacement:
    def test_totals_are_copied_from_checkout(self):
        order = Order.place(_checkout())
        assert order.subtotal == 3998
        assert order.shipping_cost == 500
        assert order.discount_amount == 400
        assert order.final_amount == 4098
        assert order.total == Money(4098, "USD")
        assert order.status == OrderStatus.PENDING.value

    def test_lines_are_snapshotted(self):
        order = Order.place(_checkout())
        assert len(order.items) == 1
        line = order.items[0]
        assert (line.quantity, line.unit_price, line.line_total, line.sku) == (2, 1999, 3998, "W-1")

    def test_billing_defaults_to_shipping(self):
        order = Order.place(_checkout())
        assert order.billing_address.street == "1 Main St"

    def test_applied_discount_view(self):
        applied = Order.place(_checkout()).applied_discount
        assert applied.code == "SAVE10"
        assert applied.amount == Money(400, "USD")

    def test_guest_order(self):
        order = Order.place(_checkout(user_id=None, session_id="sess-1"))
        assert order.is_guest is True
        assert order.order_number.startswith("GS-")

    def test_final_amount_must_match_components(self):
        order = Order.place(_checkout())
        with pytest.raises(ValidationError):
            order.final_amount = 1


class TestOrderNumbers:
    def test_format(self):
        assert re.fullmatch(r"ORD-\d{8}-[0-9A-F]{8}", generate_order_number(is_guest=False))
        assert re.fullmatch(r"GS-\d{8}-[0-9A-F]{8}", generate_order_number(is_guest=True))

    def test_unique(self):
        assert len({generate_order_number(False) for _ in range(50)}) == 50


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.PAID),
            (OrderStatus.PENDING, OrderStatus.PENDING_ACTION),
            (OrderStatus.PENDING_ACTION, OrderStatus.PAID),
            (OrderStatus.PAID, OrderStatus.CAPTURED),
            (OrderStatus.CAPTURED, OrderStatus.SHIPPED),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
            (OrderStatus.SHIPPED, OrderStatus.REFUNDED),
            (OrderStatus.PAID, OrderStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.SHIPPED),
            (OrderStatus.PENDING, OrderStatus.REFUNDED),
            (OrderStatus.DELIVERED, OrderStatus.REFUNDED),
            (OrderStatus.CANCELLED, OrderStatus.PAID),
            (OrderStatus.REFUNDED, OrderStatus.CANCELLED),
        ],
    )
    def test_rejected(self, current, target):
        assert not can_transition(current, target)

    def test_is_behind(self):
        assert is_behind(OrderStatus.CAPTURED, OrderStatus.PAID)
        assert not is_behind(OrderStatus.PAID, OrderStatus.CAPTURED)

    def test_forward_path_skips_ahead(self):
        assert forward_path(OrderStatus.PENDING, OrderStatus.CAPTURED) == [OrderStatus.PAID, OrderStatus.CAPTURED]

    def test_forward_path_never_passes_terminal_states(self):
        assert forward_path(OrderStatus.DELIVERED, OrderStatus.REFUNDED) is None
        assert forward_path(OrderStatus.PENDING, OrderStatus.REFUNDED) == [OrderStatus.PAID, OrderStatus.REFUNDED]


class TestTransitionTo:
    def test_legal_move(self):
        order = _order()
        assert order.transition_to(OrderStatus.PAID) is True
        assert order.status == OrderStatus.PAID.value

    def test_same_state_is_noop(self):
        order = _order(OrderStatus.PAID)
        assert order.transition_to("paid") is False

    def test_illegal_move(self):
        order = _order()
        with pytest.raises(IllegalTransition) as exc:
            order.transition_to(OrderStatus.SHIPPED)
        assert exc.value.messages["status"] == ["Cannot transition from pending to shipped"]

    def test_unknown_status(self):
        with pytest.raises(ValueError):
            _order().transition_to("teleported")

    def test_terminal_states_are_final(self):
        order = _order(OrderStatus.DELIVERED)
        for target in (OrderStatus.CANCELLED, OrderStatus.REFUNDED, OrderStatus.SHIPPED):
            with pytest.raises(IllegalTransition):
                order.transition_to(target)

    def test_delivery_stamps_completion(self):
        order = _order(OrderStatus.SHIPPED)
        order.transition_to(OrderStatus.DELIVERED)
        assert order.completed_at is not None


class TestReconcileTo:
    def test_late_event_is_noop(self):
        order = _order(OrderStatus.CAPTURED)
        assert order.reconcile_to(OrderStatus.PAID) is False
        assert order.status == OrderStatus.CAPTURED.value

    def test_skip_ahead_walks_intermediate_states(self):
        order = _order()
        assert order.reconcile_to(OrderStatus.CAPTURED) is True
        assert order.status == OrderStatus.CAPTURED.value

    def test_illegal_target_raises(self):
        order = _order(OrderStatus.DELIVERED)
        with pytest.raises(IllegalTransition):
            order.reconcile_to(OrderStatus.REFUNDED)


class TestPaymentBookkeeping:
    def test_record_payment_reference(self):
        order = _order()
        order.record_payment_reference("stripe", "pi_123", "credit_card")
        assert (order.payment_provider, order.payment_id, order.payment_method) == ("stripe", "pi_123", "credit_card")

    def test_require_action_parks_order(self):
        order = _order()
        order.require_action("mobilepay", "https://pay.example.test/redirect")
        assert order.status == OrderStatus.PENDING_ACTION.value
        assert order.action_url == "https://pay.example.test/redirect"
