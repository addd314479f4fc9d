"""Catalog collaborator port.

Product data is owned by the catalog service; checkout only needs current
price, weight, category and stock for a product variant.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from commerce.shared.money import Money


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: str
    variant_id: str | None
    sku: str
    name: str
    price: Money
    weight: float = 0.0
    category_id: str | None = None
    active: bool = True


@dataclass(frozen=True)
class StockLine:
    product_id: str
    variant_id: str | None
    quantity: int


class Catalog(ABC):
    @abstractmethod
    def get_product(self, product_id: str, variant_id: str | None = None) -> ProductSnapshot:
        """Return the product variant or raise ``ObjectNotFoundError``."""
        ...

    @abstractmethod
    def check_stock(self, product_id: str, variant_id: str | None, quantity: int) -> bool: ...

    @abstractmethod
    def reserve_stock(self, lines: list[StockLine]) -> bool:
        """Take stock for every line, or for none of them when any line is short."""
        ...

    @abstractmethod
    def release_stock(self, lines: list[StockLine]) -> None: ...

    def get_product_price(self, product_id: str, variant_id: str | None, currency: str) -> Money:
        price = self.get_product(product_id, variant_id).price
        if price.currency != currency.upper():
            raise ValueError(f"Catalog prices {product_id} in {price.currency}, not {currency}")
        return price
