"""Manual bundle builder.

The operator assembles a replacement bundle by hand. Progress against the
policy target is available live; finish() yields a BundleCandidate that the
exchange workflow accepts exactly like a generated suggestion.
"""

from __future__ import annotations

import logging

from src.common.models import LineItem, Product, line_items_value

from .models import BundleCandidate, describe_difference
from .policy import progress_percent

logger = logging.getLogger(__name__)

MANUAL_MATCH_SCORE = 100.0


class ManualBundleBuilder:
    """Accumulates line items for a hand-built bundle.

    Usage:
        builder = ManualBundleBuilder(target=result.target, category="pets")
        builder.add(product, 2)
        builder.progress   # -> 80.0
        bundle = builder.finish()
    """

    def __init__(
        self,
        target: float,
        category: str | None = None,
        subtype: str | None = None,
    ) -> None:
        self.target = max(0.0, target)
        self.category = category
        self.subtype = subtype
        # product id -> LineItem, insertion ordered
        self._items: dict[str, LineItem] = {}

    @property
    def items(self) -> list[LineItem]:
        return list(self._items.values())

    @property
    def total_value(self) -> float:
        return line_items_value(self.items)

    @property
    def value_difference(self) -> float:
        return self.total_value - self.target

    @property
    def progress(self) -> float:
        return progress_percent(self.total_value, self.target)

    @property
    def remaining(self) -> float:
        return max(0.0, self.target - self.total_value)

    @property
    def difference_label(self) -> str:
        return describe_difference(self.value_difference)

    def add(self, product: Product, quantity: int = 1) -> None:
        """Add units of a product; repeated adds accumulate."""
        if quantity < 1:
            raise ValueError(f"quantity must be positive, got {quantity}")
        current = self._items.get(product.id)
        new_quantity = quantity + (current.quantity if current else 0)
        self._items[product.id] = LineItem(product=product, quantity=new_quantity)

    def set_quantity(self, product: Product, quantity: int) -> None:
        """Set an absolute quantity; 0 removes the product."""
        if quantity < 0:
            raise ValueError(f"quantity must be non-negative, got {quantity}")
        if quantity == 0:
            self._items.pop(product.id, None)
            return
        self._items[product.id] = LineItem(product=product, quantity=quantity)

    def remove(self, product_id: str) -> None:
        self._items.pop(product_id, None)

    def clear(self) -> None:
        self._items.clear()

    def finish(self) -> BundleCandidate:
        """Wrap the accumulated items into a BundleCandidate.

        Raises:
            ValueError: If no items were added.
        """
        items = self.items
        if not items:
            raise ValueError("Cannot finish an empty manual bundle")

        total = self.total_value
        bundle = BundleCandidate(
            id="manual-" + "-".join(item.product.id for item in items),
            items=items,
            total_value=total,
            value_difference=total - self.target,
            match_score=MANUAL_MATCH_SCORE,
            category_match=all(i.product.category == self.category for i in items),
            affinity_match=any(i.product.subtype == self.subtype for i in items),
            strategy="manual",
        )
        logger.info(
            "Manual bundle %s: %d items, total %.2f (%s)",
            bundle.id, len(items), total, bundle.difference_label,
        )
        return bundle
