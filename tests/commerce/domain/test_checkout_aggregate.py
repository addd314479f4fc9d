"""Domain tests for the Checkout aggregate: lines, totals, ownership and lifecycle."""

from datetime import timedelta

import pytest
from protean.exceptions import ValidationError

from commerce.checkout.checkout import Checkout, CheckoutStatus
from commerce.discount.engine import AppliedDiscount
from commerce.errors import InvalidState
from commerce.shared.money import Money
from commerce.shared.time import as_utc, utc_now


def _checkout(**kwargs):
    kwargs.setdefault("user_id", "user-001")
    return Checkout.create(**kwargs)


def _ready(checkout):
    checkout.add_item("p1", 2, 1999, name="Widget")
    checkout.set_shipping_address(street="1 Main St", country="US", city="Springfield")
    checkout.set_customer_details("Jane@Example.com", "Jane Doe")
    return checkout


class TestCheckoutCreation:
    def test_user_checkout(self):
        checkout = _checkout()
        assert checkout.status == CheckoutStatus.ACTIVE.value
        assert checkout.is_guest is False
        assert checkout.owner_key == "user:user-001"
        assert checkout.expires_at > checkout.created_at

    def test_guest_checkout(self):
        checkout = Checkout.create(session_id="sess-1")
        assert checkout.is_guest is True
        assert checkout.owner_key == "session:sess-1"

    def test_user_wins_over_session(self):
        checkout = Checkout.create(user_id="user-001", session_id="sess-1")
        assert checkout.session_id is None

    def test_needs_an_owner(self):
        with pytest.raises(ValidationError):
            Checkout.create()

    def test_currency_upper_cased(self):
        assert _checkout(currency="eur").currency == "EUR"

    def test_lifecycle_states(self):
        # Payment redirects are tracked on the order, never on the checkout
        assert {status.value for status in CheckoutStatus} == {"active", "completed", "abandoned", "expired"}


class TestCheckoutItems:
    def test_add_item_updates_totals(self):
        checkout = _checkout()
        checkout.add_item("p1", 2, 1999, weight=0.5)
        assert checkout.subtotal == 3998
        assert checkout.final_amount == 3998
        assert checkout.total_weight == pytest.approx(1.0)

    def test_adding_same_product_grows_line(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999)
        checkout.add_item("p1", 2, 1999)
        assert len(checkout.items) == 1
        assert checkout.items[0].quantity == 3

    def test_variants_are_separate_lines(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999, variant_id="red")
        checkout.add_item("p1", 1, 1999, variant_id="blue")
        assert len(checkout.items) == 2

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            _checkout().add_item("p1", 0, 1999)

    def test_update_quantity(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999)
        checkout.update_item_quantity("p1", 4)
        assert checkout.subtotal == 4 * 1999

    def test_update_to_zero_removes_line(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999)
        checkout.update_item_quantity("p1", 0)
        assert len(checkout.items) == 0
        assert checkout.subtotal == 0

    def test_update_unknown_item(self):
        with pytest.raises(ValidationError):
            _checkout().update_item_quantity("missing", 2)

    def test_remove_item(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999)
        checkout.add_item("p2", 1, 500)
        checkout.remove_item("p1")
        assert [str(item.product_id) for item in checkout.items] == ["p2"]
        assert checkout.subtotal == 500

    def test_clear_drops_shipping_and_discount(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999)
        checkout.set_shipping_method("ship-1", "Standard", 500)
        checkout.apply_discount(AppliedDiscount("disc-1", "SAVE10", Money(200, "USD")))
        checkout.clear()
        assert len(checkout.items) == 0
        assert checkout.shipping_method_id is None
        assert checkout.discount_code is None
        assert checkout.final_amount == 0


class TestCheckoutTotals:
    def test_shipping_added_to_final(self):
        checkout = _checkout()
        checkout.add_item("p1", 2, 1999)
        checkout.set_shipping_method("ship-1", "Standard", 500)
        assert checkout.shipping_cost == 500
        assert checkout.final_amount == 4498

    def test_free_shipping_threshold(self):
        checkout = _checkout()
        checkout.add_item("p1", 2, 1999)
        checkout.set_shipping_method("ship-1", "Standard", 500, free_threshold=3000)
        assert checkout.shipping_cost == 0

    def test_discount_subtracted(self):
        checkout = _checkout()
        checkout.add_item("p1", 2, 1999)
        checkout.set_shipping_method("ship-1", "Standard", 500)
        checkout.apply_discount(AppliedDiscount("disc-1", "SAVE10", Money(400, "USD")))
        assert checkout.final_amount == 3998 + 500 - 400

    def test_discount_never_exceeds_subtotal(self):
        checkout = _checkout()
        checkout.add_item("p2", 1, 500)
        checkout.apply_discount(AppliedDiscount("disc-1", "HUGE", Money(900, "USD")))
        assert checkout.discount_amount == 500
        assert checkout.final_amount == 0

    def test_discount_in_other_currency_rejected(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999)
        with pytest.raises(ValidationError):
            checkout.apply_discount(AppliedDiscount("disc-1", "EURO", Money(100, "EUR")))

    def test_remove_discount(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999)
        checkout.apply_discount(AppliedDiscount("disc-1", "SAVE", Money(100, "USD")))
        checkout.remove_discount()
        assert checkout.discount_amount == 0
        assert checkout.final_amount == 1999


class TestCheckoutDetails:
    def test_email_is_normalized(self):
        checkout = _checkout()
        checkout.set_customer_details("  Jane@Example.COM ", "Jane Doe")
        assert checkout.customer_email == "jane@example.com"

    def test_email_must_look_like_one(self):
        with pytest.raises(ValidationError):
            _checkout().set_customer_details("not-an-email", "Jane Doe")

    def test_ready_for_order_lists_missing_pieces(self):
        with pytest.raises(ValidationError) as exc:
            _checkout().ensure_ready_for_order()
        assert set(exc.value.messages) == {"items", "shipping_address", "customer_email", "customer_full_name"}

    def test_ready_checkout_passes(self):
        _ready(_checkout()).ensure_ready_for_order()


class TestCheckoutOwnership:
    def test_assign_to_user(self):
        checkout = Checkout.create(session_id="sess-1")
        checkout.assign_to_user("user-001")
        assert str(checkout.user_id) == "user-001"
        assert checkout.session_id is None

    def test_absorb_sums_duplicate_lines(self):
        user_checkout = _checkout()
        user_checkout.add_item("p1", 1, 1999)
        guest = Checkout.create(session_id="sess-1")
        guest.add_item("p1", 2, 1999)
        guest.add_item("p2", 1, 500)
        guest.set_customer_details("guest@example.com", "Guest Shopper")

        user_checkout.absorb(guest)

        quantities = {str(item.product_id): item.quantity for item in user_checkout.items}
        assert quantities == {"p1": 3, "p2": 1}
        assert user_checkout.subtotal == 3 * 1999 + 500
        assert user_checkout.customer_email == "guest@example.com"


class TestCheckoutLifecycle:
    def test_mark_completed_references_order(self):
        checkout = _ready(_checkout())
        checkout.mark_completed("order-1")
        assert checkout.status == CheckoutStatus.COMPLETED.value
        assert str(checkout.converted_order_id) == "order-1"

    def test_cannot_complete_twice(self):
        checkout = _ready(_checkout())
        checkout.mark_completed("order-1")
        with pytest.raises(InvalidState):
            checkout.mark_completed("order-2")

    def test_completed_checkout_is_frozen(self):
        checkout = _ready(_checkout())
        checkout.mark_completed("order-1")
        with pytest.raises(InvalidState):
            checkout.add_item("p2", 1, 500)

    def test_abandoned_checkout_reactivates_on_change(self):
        checkout = _checkout()
        checkout.add_item("p1", 1, 1999)
        checkout.mark_abandoned()
        checkout.add_item("p2", 1, 500)
        assert checkout.status == CheckoutStatus.ACTIVE.value

    def test_only_active_checkouts_are_abandoned(self):
        checkout = _checkout()
        checkout.mark_expired()
        with pytest.raises(InvalidState):
            checkout.mark_abandoned()

    def test_expired_checkout_cannot_be_converted(self):
        checkout = _ready(_checkout())
        checkout.mark_expired()
        with pytest.raises(InvalidState):
            checkout.ensure_ready_for_order()

    def test_extend_expiry(self):
        checkout = _checkout()
        before = checkout.expires_at
        checkout.extend_expiry(2)
        assert checkout.expires_at - before == timedelta(hours=2)

    def test_activity_pushes_expiry_forward(self):
        checkout = _checkout(ttl_hours=1)
        checkout.expires_at = utc_now() + timedelta(minutes=5)

        checkout.add_item("p1", 1, 1999)

        assert as_utc(checkout.expires_at) > utc_now() + timedelta(minutes=55)
        assert checkout.expires_at - checkout.last_activity_at == timedelta(hours=1)

    def test_is_expired(self):
        checkout = _checkout(ttl_hours=1)
        assert not checkout.is_expired()
        assert checkout.is_expired(utc_now() + timedelta(hours=2))

    def test_is_idle_since(self):
        checkout = _checkout()
        assert checkout.is_idle_since(utc_now() + timedelta(minutes=1))
        assert not checkout.is_idle_since(utc_now() - timedelta(minutes=5))
