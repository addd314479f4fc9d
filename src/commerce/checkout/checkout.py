"""Checkout aggregate: one shopper's working order before it is placed.

A checkout belongs either to an authenticated user or to an anonymous
session. Every mutation is allowed only while the checkout is active
(an abandoned checkout comes back to life on the next mutation), refreshes
``last_activity_at`` and recomputes all totals from the item lines.

State machine:
    active → completed
    active → abandoned → active (on further interaction)
    active / abandoned → expired (terminal)

``converted_order_id`` is written exactly once, when the checkout turns
into an order.
"""

from datetime import timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from commerce.checkout.events import (
    CheckoutAbandoned,
    CheckoutCompleted,
    CheckoutDiscountApplied,
    CheckoutDiscountRemoved,
    CheckoutExpired,
    CheckoutItemAdded,
    CheckoutItemRemoved,
    CheckoutItemUpdated,
    CheckoutsMerged,
    CheckoutStarted,
)
from commerce.discount.engine import AppliedDiscount, CheckoutSnapshot, SnapshotLine
from commerce.domain import commerce
from commerce.errors import InvalidState
from commerce.shared.money import Money
from commerce.shared.time import as_utc, utc_now

DEFAULT_TTL_HOURS = 24


class CheckoutStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    EXPIRED = "expired"


_CONVERTIBLE_STATES = {CheckoutStatus.ACTIVE}


@commerce.value_object(part_of="Checkout")
class CheckoutAddress:
    street = String(required=True, max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=100)


@commerce.entity(part_of="Checkout")
class CheckoutItem:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(max_length=100)
    name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)  # minor units, snapshot at add time
    weight = Float(default=0.0)
    category_id = Identifier()
    added_at = DateTime()

    def matches(self, product_id, variant_id=None):
        return str(self.product_id) == str(product_id) and str(self.variant_id or "") == str(variant_id or "")

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@commerce.aggregate
class Checkout:
    user_id = Identifier()
    session_id = String(max_length=255)
    items = HasMany(CheckoutItem)
    shipping_address = ValueObject(CheckoutAddress)
    billing_address = ValueObject(CheckoutAddress)
    customer_email = String(max_length=255)
    customer_phone = String(max_length=50)
    customer_full_name = String(max_length=255)
    shipping_method_id = Identifier()
    shipping_method_name = String(max_length=100)
    shipping_base_cost = Integer(default=0)
    shipping_free_threshold = Integer(default=0)
    payment_provider = String(max_length=50)
    discount_id = Identifier()
    discount_code = String(max_length=50)
    currency = String(max_length=3, default="USD")
    subtotal = Integer(default=0)
    shipping_cost = Integer(default=0)
    discount_amount = Integer(default=0)
    final_amount = Integer(default=0)
    total_weight = Float(default=0.0)
    status = String(choices=CheckoutStatus, default=CheckoutStatus.ACTIVE.value)
    created_at = DateTime()
    last_activity_at = DateTime()
    expires_at = DateTime()
    ttl_hours = Integer(default=DEFAULT_TTL_HOURS)
    completed_at = DateTime()
    converted_order_id = Identifier()

    @invariant.post
    def owned_by_user_or_session(self):
        if bool(self.user_id) == bool(self.session_id):
            raise ValidationError({"checkout": ["A checkout belongs to exactly one of a user or a guest session"]})

    @invariant.post
    def completed_checkout_references_order(self):
        if self.status == CheckoutStatus.COMPLETED.value and not self.converted_order_id:
            raise ValidationError({"checkout": ["A completed checkout must reference its order"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id=None, session_id=None, currency="USD", ttl_hours=DEFAULT_TTL_HOURS):
        now = utc_now()
        checkout = cls(
            user_id=user_id,
            session_id=None if user_id else session_id,
            currency=currency.upper(),
            status=CheckoutStatus.ACTIVE.value,
            created_at=now,
            last_activity_at=now,
            expires_at=now + timedelta(hours=ttl_hours),
            ttl_hours=ttl_hours,
        )
        checkout.raise_(
            CheckoutStarted(
                checkout_id=checkout.id,
                user_id=user_id,
                session_id=checkout.session_id,
                currency=checkout.currency,
                expires_at=checkout.expires_at,
            )
        )
        return checkout

    # -------------------------------------------------------------------
    # Guards and bookkeeping
    # -------------------------------------------------------------------
    def _ensure_mutable(self):
        status = CheckoutStatus(self.status)
        if status == CheckoutStatus.ABANDONED:
            self.status = CheckoutStatus.ACTIVE.value
        elif status != CheckoutStatus.ACTIVE:
            raise InvalidState({"status": [f"Checkout is {status.value} and can no longer be modified"]})

    def _touch(self):
        now = utc_now()
        self.last_activity_at = now
        self.expires_at = now + timedelta(hours=self.ttl_hours or DEFAULT_TTL_HOURS)
        self._recalculate_totals()

    def _recalculate_totals(self):
        """Recompute every total from the item lines."""
        subtotal = sum(item.line_total for item in self.items)
        if not self.shipping_method_id:
            shipping = 0
        elif self.shipping_free_threshold and subtotal >= self.shipping_free_threshold:
            shipping = 0
        else:
            shipping = self.shipping_base_cost or 0
        discount = min(self.discount_amount or 0, subtotal)

        self.subtotal = subtotal
        self.shipping_cost = shipping
        self.discount_amount = discount
        self.final_amount = max(subtotal + shipping - discount, 0)
        self.total_weight = sum((item.weight or 0.0) * item.quantity for item in self.items)

    def find_item(self, product_id, variant_id=None):
        return next((i for i in self.items if i.matches(product_id, variant_id)), None)

    @property
    def is_guest(self) -> bool:
        return not self.user_id

    @property
    def owner_key(self) -> str:
        return f"user:{self.user_id}" if self.user_id else f"session:{self.session_id}"

    def money(self, amount: int) -> Money:
        return Money(amount or 0, self.currency)

    def snapshot(self) -> CheckoutSnapshot:
        return CheckoutSnapshot(
            currency=self.currency,
            lines=tuple(
                SnapshotLine(
                    product_id=str(item.product_id),
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    category_id=str(item.category_id) if item.category_id else None,
                )
                for item in self.items
            ),
        )

    # -------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------
    def add_item(
        self,
        product_id,
        quantity,
        unit_price,
        variant_id=None,
        sku=None,
        name=None,
        weight=0.0,
        category_id=None,
    ):
        """Add a line, or grow the existing line for the same product and variant."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        self._ensure_mutable()

        existing = self.find_item(product_id, variant_id)
        if existing:
            existing.quantity += quantity
            existing.unit_price = unit_price
        else:
            self.add_items(
                CheckoutItem(
                    product_id=product_id,
                    variant_id=variant_id,
                    sku=sku,
                    name=name,
                    quantity=quantity,
                    unit_price=unit_price,
                    weight=weight or 0.0,
                    category_id=category_id,
                    added_at=utc_now(),
                )
            )

        self._touch()
        self.raise_(
            CheckoutItemAdded(
                checkout_id=self.id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                unit_price=unit_price,
            )
        )

    def update_item_quantity(self, product_id, quantity, variant_id=None, unit_price=None):
        """Set a line's quantity; zero removes the line."""
        if quantity < 0:
            raise ValidationError({"quantity": ["Quantity cannot be negative"]})
        self._ensure_mutable()

        item = self.find_item(product_id, variant_id)
        if item is None:
            raise ValidationError({"product_id": ["Item not found in checkout"]})

        if quantity == 0:
            self.remove_item(product_id, variant_id)
            return

        previous_quantity = item.quantity
        item.quantity = quantity
        if unit_price is not None:
            item.unit_price = unit_price
        self._touch()

        self.raise_(
            CheckoutItemUpdated(
                checkout_id=self.id,
                product_id=product_id,
                variant_id=variant_id,
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def remove_item(self, product_id, variant_id=None):
        self._ensure_mutable()

        item = self.find_item(product_id, variant_id)
        if item is None:
            raise ValidationError({"product_id": ["Item not found in checkout"]})

        self.remove_items(item)
        self._touch()
        self.raise_(CheckoutItemRemoved(checkout_id=self.id, product_id=product_id, variant_id=variant_id))

    def clear(self):
        """Empty the checkout: items, shipping selection and discount."""
        self._ensure_mutable()
        for item in list(self.items):
            self.remove_items(item)
        self.shipping_method_id = None
        self.shipping_method_name = None
        self.shipping_base_cost = 0
        self.shipping_free_threshold = 0
        self.discount_id = None
        self.discount_code = None
        self.discount_amount = 0
        self._touch()

    # -------------------------------------------------------------------
    # Addresses, customer, shipping, payment
    # -------------------------------------------------------------------
    def set_shipping_address(self, street, country, city=None, state=None, postal_code=None):
        self._ensure_mutable()
        self.shipping_address = CheckoutAddress(
            street=street, city=city, state=state, postal_code=postal_code, country=country
        )
        self._touch()

    def set_billing_address(self, street, country, city=None, state=None, postal_code=None):
        self._ensure_mutable()
        self.billing_address = CheckoutAddress(
            street=street, city=city, state=state, postal_code=postal_code, country=country
        )
        self._touch()

    def set_customer_details(self, email, full_name, phone=None):
        self._ensure_mutable()
        if not email or "@" not in email:
            raise ValidationError({"email": ["A valid email address is required"]})
        self.customer_email = email.strip().lower()
        self.customer_full_name = full_name
        self.customer_phone = phone
        self._touch()

    def set_shipping_method(self, method_id, name, cost, free_threshold=0):
        self._ensure_mutable()
        self.shipping_method_id = method_id
        self.shipping_method_name = name
        self.shipping_base_cost = cost
        self.shipping_free_threshold = free_threshold or 0
        self._touch()

    def set_payment_provider(self, provider):
        self._ensure_mutable()
        self.payment_provider = provider
        self._touch()

    # -------------------------------------------------------------------
    # Discount (at most one; a new code replaces the old one)
    # -------------------------------------------------------------------
    def apply_discount(self, applied: AppliedDiscount):
        self._ensure_mutable()
        if applied.amount.currency != self.currency:
            raise ValidationError({"discount_code": ["Discount currency does not match the checkout"]})

        self.discount_id = applied.discount_id
        self.discount_code = applied.code
        self.discount_amount = applied.amount.amount
        self._touch()

        self.raise_(
            CheckoutDiscountApplied(
                checkout_id=self.id,
                discount_id=applied.discount_id,
                code=applied.code,
                amount=self.discount_amount,
            )
        )

    def remove_discount(self, reason=None):
        self._ensure_mutable()
        if not self.discount_id:
            return
        code = self.discount_code
        self.discount_id = None
        self.discount_code = None
        self.discount_amount = 0
        self._touch()
        self.raise_(CheckoutDiscountRemoved(checkout_id=self.id, code=code, reason=reason))

    def reprice_discount(self, amount: Money):
        """Refresh the discount amount after the lines changed."""
        if not self.discount_id:
            return
        self.discount_amount = amount.amount
        self._recalculate_totals()

    # -------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------
    def assign_to_user(self, user_id):
        """Re-key a guest checkout to the user who just logged in."""
        self._ensure_mutable()
        with atomic_change(self):
            self.user_id = user_id
            self.session_id = None
        self._touch()

    def absorb(self, guest):
        """Fold a guest checkout's lines into this one, summing duplicate quantities."""
        self._ensure_mutable()
        merged = 0
        for item in guest.items:
            existing = self.find_item(item.product_id, item.variant_id)
            if existing:
                existing.quantity += item.quantity
            else:
                self.add_items(
                    CheckoutItem(
                        product_id=item.product_id,
                        variant_id=item.variant_id,
                        sku=item.sku,
                        name=item.name,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        weight=item.weight,
                        category_id=item.category_id,
                        added_at=item.added_at or utc_now(),
                    )
                )
            merged += 1

        if not self.customer_email and guest.customer_email:
            self.customer_email = guest.customer_email
            self.customer_full_name = guest.customer_full_name
            self.customer_phone = guest.customer_phone
        if not self.shipping_address and guest.shipping_address:
            self.shipping_address = guest.shipping_address
        if not self.billing_address and guest.billing_address:
            self.billing_address = guest.billing_address

        self._touch()
        self.raise_(
            CheckoutsMerged(
                checkout_id=self.id,
                guest_checkout_id=guest.id,
                user_id=self.user_id,
                items_merged_count=merged,
            )
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def ensure_ready_for_order(self):
        """Raise a ValidationError naming every missing piece needed to place an order."""
        if CheckoutStatus(self.status) not in _CONVERTIBLE_STATES:
            raise InvalidState({"status": [f"Checkout is {self.status} and cannot be converted"]})

        errors = {}
        if not self.items:
            errors["items"] = ["Checkout has no items"]
        if not self.shipping_address:
            errors["shipping_address"] = ["Shipping address is required"]
        if not self.customer_email:
            errors["customer_email"] = ["Customer email is required"]
        if not self.customer_full_name:
            errors["customer_full_name"] = ["Customer full name is required"]
        if errors:
            raise ValidationError(errors)

    def mark_completed(self, order_id):
        if self.converted_order_id:
            raise InvalidState({"checkout": [f"Checkout already converted to order {self.converted_order_id}"]})
        if CheckoutStatus(self.status) not in _CONVERTIBLE_STATES:
            raise InvalidState({"status": [f"Checkout is {self.status} and cannot be completed"]})

        now = utc_now()
        self.converted_order_id = order_id
        self.status = CheckoutStatus.COMPLETED.value
        self.completed_at = now

        self.raise_(
            CheckoutCompleted(
                checkout_id=self.id,
                order_id=order_id,
                final_amount=self.final_amount,
                currency=self.currency,
                completed_at=now,
            )
        )

    def mark_abandoned(self):
        if CheckoutStatus(self.status) != CheckoutStatus.ACTIVE:
            raise InvalidState({"status": ["Only active checkouts can be abandoned"]})
        self.status = CheckoutStatus.ABANDONED.value
        self.raise_(
            CheckoutAbandoned(
                checkout_id=self.id,
                customer_email=self.customer_email,
                last_activity_at=self.last_activity_at,
            )
        )

    def mark_expired(self):
        if CheckoutStatus(self.status) not in (CheckoutStatus.ACTIVE, CheckoutStatus.ABANDONED):
            raise InvalidState({"status": [f"Checkout is {self.status} and cannot expire"]})
        now = utc_now()
        self.status = CheckoutStatus.EXPIRED.value
        self.raise_(CheckoutExpired(checkout_id=self.id, expired_at=now))

    def extend_expiry(self, hours):
        if CheckoutStatus(self.status) in (CheckoutStatus.COMPLETED, CheckoutStatus.EXPIRED):
            raise InvalidState({"status": [f"Checkout is {self.status}; its expiry cannot change"]})
        self.expires_at = as_utc(self.expires_at) + timedelta(hours=hours)

    def is_expired(self, now=None) -> bool:
        now = now or utc_now()
        return self.expires_at is not None and as_utc(self.expires_at) <= now

    def is_idle_since(self, cutoff) -> bool:
        return self.last_activity_at is not None and as_utc(self.last_activity_at) <= cutoff
