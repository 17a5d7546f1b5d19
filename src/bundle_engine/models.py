"""Data models for the replacement bundle engine.

Engine-side types use @dataclass with to_dict() for JSON serialization;
catalog types (Product, LineItem) come from src.common.models.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from src.common.models import LineItem, Product, line_items_value


def format_price(value: float) -> str:
    return f"€{value:.2f}"


def describe_difference(value_difference: float) -> str:
    """Human-readable signed difference, e.g. "+€7.50 over target"."""
    rounded = round(value_difference, 2)
    if rounded > 0:
        return f"+{format_price(rounded)} over target"
    if rounded < 0:
        return f"{format_price(-rounded)} under target"
    return "on target"


@dataclass(frozen=True)
class RemovalSet:
    """Ordered line items taken off the shelf."""

    items: tuple[LineItem, ...] = ()

    @classmethod
    def of(cls, *items: LineItem) -> RemovalSet:
        return cls(tuple(items))

    @property
    def removed_value(self) -> float:
        return line_items_value(self.items)

    @property
    def is_runnable(self) -> bool:
        """True when at least one item has a positive quantity."""
        return any(item.quantity > 0 for item in self.items)

    @property
    def primary_item(self) -> LineItem | None:
        """First item with quantity > 0; drives category/subtype affinity."""
        for item in self.items:
            if item.quantity > 0:
                return item
        return None

    @property
    def primary_category(self) -> str | None:
        primary = self.primary_item
        return primary.product.category if primary else None

    @property
    def primary_subtype(self) -> str | None:
        primary = self.primary_item
        return primary.product.subtype if primary else None


@dataclass
class BundleCandidate:
    """One proposed replacement: 1 or 2 distinct products with quantities."""

    id: str
    items: list[LineItem]
    total_value: float
    value_difference: float  # total_value - target (signed)
    match_score: float = 0.0
    category_match: bool = False
    affinity_match: bool = False
    strategy: str = "single"  # single | pair | manual

    @property
    def products(self) -> list[Product]:
        return [item.product for item in self.items]

    @property
    def difference_label(self) -> str:
        return describe_difference(self.value_difference)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "strategy": self.strategy,
            "items": [
                {
                    "product_id": item.product.id,
                    "name": item.product.name,
                    "quantity": item.quantity,
                    "unit_price": item.product.price,
                }
                for item in self.items
            ],
            "total_value": round(self.total_value, 2),
            "value_difference": round(self.value_difference, 2),
            "difference_label": self.difference_label,
            "match_score": round(self.match_score, 2),
            "category_match": self.category_match,
            "affinity_match": self.affinity_match,
        }


@dataclass
class SuggestionResult:
    """The complete output of one bundle engine run."""

    policy_name: str
    removed_value: float
    target: float
    pool_size: int = 0
    single_count: int = 0
    pair_count: int = 0
    suggestions: list[BundleCandidate] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.suggestions

    def get(self, candidate_id: str) -> BundleCandidate | None:
        for candidate in self.suggestions:
            if candidate.id == candidate_id:
                return candidate
        return None

    def to_dict(self) -> dict:
        return {
            "policy": self.policy_name,
            "removed_value": round(self.removed_value, 2),
            "target": round(self.target, 2),
            "pool_size": self.pool_size,
            "single_count": self.single_count,
            "pair_count": self.pair_count,
            "suggestions": [c.to_dict() for c in self.suggestions],
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2, default=str)
