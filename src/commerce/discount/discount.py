"""Discount aggregate: a redeemable code with targeting, limits and a validity window.

Percentage discounts carry whole percentage points in ``value``; fixed
discounts carry minor units of ``currency``. Usage is counted once per
placed order.
"""

import json
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Integer, String, Text

from commerce.discount.events import DiscountCreated, DiscountDeactivated, DiscountUsed
from commerce.domain import commerce
from commerce.shared.time import as_utc, utc_now


class DiscountKind(Enum):
    BASKET = "basket"
    PRODUCT = "product"


class DiscountMethod(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


@commerce.aggregate
class Discount:
    code = String(required=True, max_length=50)
    description = String(max_length=255)
    kind = String(choices=DiscountKind, default=DiscountKind.BASKET.value)
    method = String(choices=DiscountMethod, required=True)
    value = Integer(required=True)
    currency = String(max_length=3, default="USD")
    min_order_value = Integer(default=0, min_value=0)
    max_discount_value = Integer(default=0, min_value=0)  # 0 = uncapped
    product_ids = Text()  # JSON array
    category_ids = Text()  # JSON array
    starts_at = DateTime()
    ends_at = DateTime()
    usage_limit = Integer(default=0, min_value=0)  # 0 = unlimited
    usage_limit_per_customer = Integer(default=0, min_value=0)
    current_usage = Integer(default=0, min_value=0)
    active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def value_must_be_positive(self):
        if self.value is not None and self.value <= 0:
            raise ValidationError({"value": ["Discount value must be greater than zero"]})

    @invariant.post
    def percentage_cannot_exceed_hundred(self):
        if self.method == DiscountMethod.PERCENTAGE.value and self.value is not None and self.value > 100:
            raise ValidationError({"value": ["Percentage discount cannot exceed 100"]})

    @invariant.post
    def window_must_be_ordered(self):
        if self.starts_at and self.ends_at and as_utc(self.ends_at) < as_utc(self.starts_at):
            raise ValidationError({"ends_at": ["End date cannot be before start date"]})

    @invariant.post
    def product_discount_needs_targets(self):
        if self.kind == DiscountKind.PRODUCT.value and not (self.target_product_ids or self.target_category_ids):
            raise ValidationError({"product_ids": ["Product discounts must target products or categories"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        code,
        method,
        value,
        kind=DiscountKind.BASKET.value,
        currency="USD",
        description=None,
        min_order_value=0,
        max_discount_value=0,
        product_ids=None,
        category_ids=None,
        starts_at=None,
        ends_at=None,
        usage_limit=0,
        usage_limit_per_customer=0,
    ):
        now = utc_now()
        discount = cls(
            code=normalize_code(code),
            description=description,
            kind=kind,
            method=method,
            value=value,
            currency=currency.upper(),
            min_order_value=min_order_value,
            max_discount_value=max_discount_value,
            product_ids=json.dumps(list(product_ids or [])),
            category_ids=json.dumps(list(category_ids or [])),
            starts_at=starts_at or now,
            ends_at=ends_at,
            usage_limit=usage_limit,
            usage_limit_per_customer=usage_limit_per_customer,
            current_usage=0,
            active=True,
            created_at=now,
            updated_at=now,
        )
        discount.raise_(
            DiscountCreated(
                discount_id=discount.id,
                code=discount.code,
                method=method,
                value=value,
            )
        )
        return discount

    # -------------------------------------------------------------------
    # Targeting
    # -------------------------------------------------------------------
    @property
    def target_product_ids(self) -> list[str]:
        return json.loads(self.product_ids) if self.product_ids else []

    @property
    def target_category_ids(self) -> list[str]:
        return json.loads(self.category_ids) if self.category_ids else []

    # -------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------
    def update(self, **changes):
        """Apply admin edits; invariants are checked once all fields are set."""
        allowed = {
            "description",
            "value",
            "min_order_value",
            "max_discount_value",
            "starts_at",
            "ends_at",
            "usage_limit",
            "usage_limit_per_customer",
        }
        unknown = set(changes) - allowed - {"product_ids", "category_ids"}
        if unknown:
            raise ValidationError({"discount": [f"Cannot update fields: {', '.join(sorted(unknown))}"]})

        with atomic_change(self):
            for name, value in changes.items():
                if value is None:
                    continue
                if name in ("product_ids", "category_ids"):
                    setattr(self, name, json.dumps(list(value)))
                else:
                    setattr(self, name, value)
            self.updated_at = utc_now()

    def deactivate(self):
        if not self.active:
            return
        self.active = False
        self.updated_at = utc_now()
        self.raise_(DiscountDeactivated(discount_id=self.id, code=self.code))

    def increment_usage(self, order_id):
        self.current_usage = (self.current_usage or 0) + 1
        self.updated_at = utc_now()
        self.raise_(
            DiscountUsed(
                discount_id=self.id,
                code=self.code,
                order_id=order_id,
                current_usage=self.current_usage,
            )
        )
