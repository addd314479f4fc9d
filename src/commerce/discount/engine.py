"""Discount validation and amount computation.

Both functions are pure: they take a Discount and a snapshot of the checkout
lines and never touch storage, so the checkout can re-run them from scratch
whenever its contents change.
"""

from dataclasses import dataclass
from datetime import datetime

from commerce.discount.discount import Discount, DiscountKind, DiscountMethod
from commerce.shared.money import Money
from commerce.shared.time import as_utc, utc_now


@dataclass(frozen=True)
class SnapshotLine:
    product_id: str
    quantity: int
    unit_price: int  # minor units
    category_id: str | None = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class CheckoutSnapshot:
    currency: str
    lines: tuple[SnapshotLine, ...]

    @property
    def subtotal(self) -> Money:
        return Money(sum(line.line_total for line in self.lines), self.currency)


@dataclass(frozen=True)
class ValidityResult:
    valid: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.valid


@dataclass(frozen=True)
class AppliedDiscount:
    """Snapshot of a discount as applied to a checkout or order."""

    discount_id: str
    code: str
    amount: Money


def _is_eligible(discount: Discount, line: SnapshotLine) -> bool:
    if discount.kind != DiscountKind.PRODUCT.value:
        return True
    if line.product_id in discount.target_product_ids:
        return True
    return line.category_id is not None and line.category_id in discount.target_category_ids


def eligible_subtotal(discount: Discount, snapshot: CheckoutSnapshot) -> Money:
    total = sum(line.line_total for line in snapshot.lines if _is_eligible(discount, line))
    return Money(total, snapshot.currency)


def validate(
    discount: Discount,
    snapshot: CheckoutSnapshot,
    customer_usage: int = 0,
    now: datetime | None = None,
) -> ValidityResult:
    """Check active flag, window, usage limits, minimum order and scope."""
    now = as_utc(now) if now else utc_now()

    if not discount.active:
        return ValidityResult(False, "Discount is not active")
    if discount.starts_at and now < as_utc(discount.starts_at):
        return ValidityResult(False, "Discount is not yet valid")
    if discount.ends_at and now > as_utc(discount.ends_at):
        return ValidityResult(False, "Discount has expired")
    if discount.usage_limit and (discount.current_usage or 0) >= discount.usage_limit:
        return ValidityResult(False, "Discount usage limit reached")
    if discount.usage_limit_per_customer and customer_usage >= discount.usage_limit_per_customer:
        return ValidityResult(False, "Discount already used the maximum number of times by this customer")
    if discount.method == DiscountMethod.FIXED.value and discount.currency != snapshot.currency:
        return ValidityResult(False, f"Discount is only valid for {discount.currency} orders")
    if not snapshot.lines:
        return ValidityResult(False, "Checkout has no items")
    if discount.min_order_value and snapshot.subtotal.amount < discount.min_order_value:
        return ValidityResult(False, "Order does not meet the minimum value for this discount")
    if not any(_is_eligible(discount, line) for line in snapshot.lines):
        return ValidityResult(False, "No items in the checkout are eligible for this discount")

    return ValidityResult(True)


def compute_amount(discount: Discount, snapshot: CheckoutSnapshot) -> Money:
    """Discount amount for the snapshot, never more than its subtotal."""
    eligible = eligible_subtotal(discount, snapshot)

    if discount.method == DiscountMethod.PERCENTAGE.value:
        amount = eligible.percentage(discount.value)
    else:
        amount = Money(discount.value, snapshot.currency).min(eligible)

    if discount.max_discount_value:
        amount = amount.min(Money(discount.max_discount_value, snapshot.currency))

    return amount.min(snapshot.subtotal)
