"""In-process catalog used for development, seeding and tests."""

import threading

from protean.exceptions import ObjectNotFoundError

from commerce.catalog.port import Catalog, ProductSnapshot, StockLine
from commerce.shared.money import Money


class InMemoryCatalog(Catalog):
    def __init__(self) -> None:
        self._products: dict[tuple[str, str | None], ProductSnapshot] = {}
        self._stock: dict[tuple[str, str | None], int] = {}
        self._lock = threading.Lock()

    def add_product(
        self,
        product_id: str,
        price: Money,
        stock: int = 100,
        variant_id: str | None = None,
        sku: str | None = None,
        name: str | None = None,
        weight: float = 0.0,
        category_id: str | None = None,
    ) -> ProductSnapshot:
        snapshot = ProductSnapshot(
            product_id=product_id,
            variant_id=variant_id,
            sku=sku or f"SKU-{product_id}",
            name=name or product_id,
            price=price,
            weight=weight,
            category_id=category_id,
        )
        with self._lock:
            self._products[(product_id, variant_id)] = snapshot
            self._stock[(product_id, variant_id)] = stock
        return snapshot

    def set_price(self, product_id: str, price: Money, variant_id: str | None = None) -> None:
        with self._lock:
            current = self._products[(product_id, variant_id)]
            self._products[(product_id, variant_id)] = ProductSnapshot(
                product_id=current.product_id,
                variant_id=current.variant_id,
                sku=current.sku,
                name=current.name,
                price=price,
                weight=current.weight,
                category_id=current.category_id,
                active=current.active,
            )

    def set_stock(self, product_id: str, stock: int, variant_id: str | None = None) -> None:
        with self._lock:
            self._stock[(product_id, variant_id)] = stock

    def get_product(self, product_id: str, variant_id: str | None = None) -> ProductSnapshot:
        with self._lock:
            snapshot = self._products.get((product_id, variant_id or None))
        if snapshot is None or not snapshot.active:
            raise ObjectNotFoundError(f"Product {product_id} (variant {variant_id}) does not exist")
        return snapshot

    def check_stock(self, product_id: str, variant_id: str | None, quantity: int) -> bool:
        with self._lock:
            return self._stock.get((product_id, variant_id or None), 0) >= quantity

    def reserve_stock(self, lines: list[StockLine]) -> bool:
        with self._lock:
            keys = [(line.product_id, line.variant_id or None) for line in lines]
            if any(self._stock.get(key, 0) < line.quantity for key, line in zip(keys, lines)):
                return False
            for key, line in zip(keys, lines):
                self._stock[key] -= line.quantity
        return True

    def release_stock(self, lines: list[StockLine]) -> None:
        with self._lock:
            for line in lines:
                key = (line.product_id, line.variant_id or None)
                self._stock[key] = self._stock.get(key, 0) + line.quantity
