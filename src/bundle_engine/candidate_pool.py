"""Candidate pool builder.

Narrows the catalog (or the operator's on-hand products) to products
eligible as replacements. Output order follows input iteration order;
downstream ranking breaks ties on it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from src.common.models import LineItem, Product

from .models import RemovalSet
from .policy import TargetPolicy

logger = logging.getLogger(__name__)


def _dedupe(products: Iterable[Product]) -> list[Product]:
    """Drop repeated product ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Product] = []
    for product in products:
        if product.id in seen:
            continue
        seen.add(product.id)
        unique.append(product)
    return unique


def build_candidate_pool(
    removal: RemovalSet,
    catalog: Sequence[Product],
    available: Sequence[LineItem] = (),
    policy: TargetPolicy | None = None,
) -> list[Product]:
    """Build the ordered list of eligible replacement products.

    Args:
        removal: Products taken off the shelf.
        catalog: Read-only catalog snapshot.
        available: Products the operator has on hand. When non-empty, only
                   these are considered (quantities are ignored here).
        policy: Target policy; only strict_category_filter is read.

    Returns:
        Eligible products in stable input order. Empty when the removal set
        is not runnable or nothing shares the removed category.
    """
    policy = policy or TargetPolicy()
    if not removal.is_runnable:
        return []

    if available:
        source = "available"
        products = _dedupe(item.product for item in available)
    else:
        source = "catalog"
        products = _dedupe(catalog)

    products = [p for p in products if p.is_active]

    category = removal.primary_category
    if policy.strict_category_filter:
        products = [p for p in products if p.category == category]

    if not products:
        logger.info(
            "No candidates in %s for category '%s'", source, category
        )
    else:
        logger.debug(
            "Candidate pool: %d products from %s (category=%s, strict=%s)",
            len(products), source, category, policy.strict_category_filter,
        )
    return products
