"""Replacement pipeline: removal set -> ranked replacement suggestions.

Flow:
1. Target policy: removed value x target fraction
2. Candidate pool: catalog (or on-hand products) filtered by affinity
3. Generator: single-product and pair strategies
4. Scorer: affinity + value accuracy
5. Fair-mix selector: bounded, mixed top-N
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import TYPE_CHECKING, Union

from src.common.models import LineItem, Product

from .candidate_pool import build_candidate_pool
from .generator import BundleGenerator
from .models import RemovalSet, SuggestionResult, format_price
from .policy import TargetPolicy, compute_target
from .scorer import BundleScorer
from .selector import FairMixSelector

if TYPE_CHECKING:
    from src.exchange.base import CatalogAccessor

logger = logging.getLogger(__name__)

CatalogSource = Union[Sequence[Product], "CatalogAccessor"]


class ReplacementPipeline:
    """Chains the engine stages. Stateless between calls.

    Usage:
        pipeline = ReplacementPipeline(policy, catalog_products)
        result = pipeline.suggest(RemovalSet.of(LineItem(product=p, quantity=3)))
        for candidate in result.suggestions:
            print(candidate.id, candidate.match_score)
    """

    def __init__(self, policy: TargetPolicy, catalog: CatalogSource) -> None:
        self.policy = policy
        self.catalog = catalog

    def _catalog_snapshot(self) -> list[Product]:
        # src.exchange imports this module
        from src.exchange.base import CatalogAccessor

        if isinstance(self.catalog, CatalogAccessor):
            return list(self.catalog.list_products())
        return list(self.catalog)

    def suggest(
        self,
        removal: RemovalSet,
        available: Sequence[LineItem] = (),
        abort: threading.Event | None = None,
    ) -> SuggestionResult:
        """Compute replacement suggestions for a removal set.

        Args:
            removal: Products taken off the shelf.
            available: Products on hand (optional; empty = full catalog).
            abort: Optional handle; setting it stops pair generation.

        Returns:
            SuggestionResult; empty suggestions when nothing was removed,
            the removed value is zero, or no candidate shares the category.

        Raises:
            CalculationAborted: If abort was set during generation.
        """
        policy = self.policy
        removed_value = removal.removed_value
        target = compute_target(removed_value, policy)
        result = SuggestionResult(
            policy_name=policy.name,
            removed_value=removed_value,
            target=target,
        )

        if not removal.is_runnable or target <= 0:
            logger.info("Nothing to replace (removed value %s)", format_price(removed_value))
            return result

        catalog = [] if available else self._catalog_snapshot()
        pool = build_candidate_pool(removal, catalog, available, policy)
        result.pool_size = len(pool)
        if not pool:
            return result

        singles, pairs = BundleGenerator(policy).generate(pool, target, abort=abort)
        result.single_count = len(singles)
        result.pair_count = len(pairs)

        scorer = BundleScorer(policy, removal.primary_category, removal.primary_subtype)
        scorer.score_all(singles, target)
        scorer.score_all(pairs, target)

        result.suggestions = FairMixSelector(policy).select(singles, pairs)

        logger.info(
            "Policy %s: removed %s -> target %s, pool=%d, singles=%d, pairs=%d, suggestions=%d",
            policy.name,
            format_price(removed_value),
            format_price(target),
            result.pool_size,
            result.single_count,
            result.pair_count,
            len(result.suggestions),
        )
        return result
