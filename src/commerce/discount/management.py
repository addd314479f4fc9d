"""Discount administration: commands, handler and lookups."""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from commerce.discount.discount import Discount, DiscountKind, normalize_code
from commerce.domain import commerce

logger = structlog.get_logger(__name__)


def find_discount_by_code(code):
    """Return the discount with ``code`` or raise ``ObjectNotFoundError``."""
    normalized = normalize_code(code)
    repo = current_domain.repository_for(Discount)
    results = repo._dao.query.filter(code=normalized).all().items
    if not results:
        raise ObjectNotFoundError(f"Discount code {normalized} does not exist")
    return results[0]


def list_active_discounts():
    repo = current_domain.repository_for(Discount)
    return repo._dao.query.filter(active=True).all().items


@commerce.command(part_of="Discount")
class CreateDiscount:
    code = String(required=True, max_length=50)
    description = String(max_length=255)
    kind = String(default=DiscountKind.BASKET.value)
    method = String(required=True)
    value = Integer(required=True)
    currency = String(max_length=3, default="USD")
    min_order_value = Integer(default=0)
    max_discount_value = Integer(default=0)
    product_ids = Text()  # JSON array
    category_ids = Text()  # JSON array
    starts_at = DateTime()
    ends_at = DateTime()
    usage_limit = Integer(default=0)
    usage_limit_per_customer = Integer(default=0)


@commerce.command(part_of="Discount")
class UpdateDiscount:
    discount_id = Identifier(required=True)
    description = String(max_length=255)
    value = Integer()
    min_order_value = Integer()
    max_discount_value = Integer()
    product_ids = Text()
    category_ids = Text()
    starts_at = DateTime()
    ends_at = DateTime()
    usage_limit = Integer()
    usage_limit_per_customer = Integer()


@commerce.command(part_of="Discount")
class DeactivateDiscount:
    discount_id = Identifier(required=True)


@commerce.command_handler(part_of=Discount)
class DiscountManagementHandler:
    @handle(CreateDiscount)
    def create_discount(self, command):
        code = normalize_code(command.code)
        try:
            find_discount_by_code(code)
        except ObjectNotFoundError:
            pass
        else:
            raise ValidationError({"code": [f"Discount code {code} already exists"]})

        discount = Discount.create(
            code=code,
            method=command.method,
            value=command.value,
            kind=command.kind or DiscountKind.BASKET.value,
            currency=command.currency or "USD",
            description=command.description,
            min_order_value=command.min_order_value or 0,
            max_discount_value=command.max_discount_value or 0,
            product_ids=json.loads(command.product_ids) if command.product_ids else [],
            category_ids=json.loads(command.category_ids) if command.category_ids else [],
            starts_at=command.starts_at,
            ends_at=command.ends_at,
            usage_limit=command.usage_limit or 0,
            usage_limit_per_customer=command.usage_limit_per_customer or 0,
        )
        current_domain.repository_for(Discount).add(discount)
        logger.info("Discount created", discount_id=str(discount.id), code=code)
        return str(discount.id)

    @handle(UpdateDiscount)
    def update_discount(self, command):
        repo = current_domain.repository_for(Discount)
        discount = repo.get(command.discount_id)
        discount.update(
            description=command.description,
            value=command.value,
            min_order_value=command.min_order_value,
            max_discount_value=command.max_discount_value,
            product_ids=json.loads(command.product_ids) if command.product_ids else None,
            category_ids=json.loads(command.category_ids) if command.category_ids else None,
            starts_at=command.starts_at,
            ends_at=command.ends_at,
            usage_limit=command.usage_limit,
            usage_limit_per_customer=command.usage_limit_per_customer,
        )
        repo.add(discount)

    @handle(DeactivateDiscount)
    def deactivate_discount(self, command):
        repo = current_domain.repository_for(Discount)
        discount = repo.get(command.discount_id)
        discount.deactivate()
        repo.add(discount)
