"""Bundle scoring: affinity and value-accuracy terms, clamped to 0-100.

Per product:
- base_score
- + category_bonus if the category matches the removed primary category,
  otherwise - category_penalty
- + affinity_bonus if the subtype matches the removed primary subtype

Per bundle:
- single: product component + value accuracy
- multi:  mean(product components) + value_accuracy_weight
          - penalty_per_unit_deviation x |diff| / target
  (components are rated as exact matches; the penalty alone covers the drift)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from src.common.models import Product

from .models import BundleCandidate
from .policy import TargetPolicy

logger = logging.getLogger(__name__)

SCORE_MIN = 0.0
SCORE_MAX = 100.0


class BundleScorer:
    """Assigns match_score, category_match and affinity_match in place.

    Usage:
        scorer = BundleScorer(policy, category="pets", subtype="standard")
        scorer.score_all(candidates, target)
    """

    def __init__(
        self,
        policy: TargetPolicy,
        category: str | None,
        subtype: str | None,
    ) -> None:
        self.weights = policy.scoring_weights
        self.category = category
        self.subtype = subtype

    def component_score(self, product: Product) -> float:
        """Affinity part of the score for one product."""
        w = self.weights
        score = w.base_score
        if product.category == self.category:
            score += w.category_bonus
        else:
            score -= w.category_penalty
        if product.subtype == self.subtype:
            score += w.affinity_bonus
        return score

    def value_accuracy(self, value_difference: float, target: float) -> float:
        if target <= 0:
            return 0.0
        accuracy = max(0.0, 1.0 - abs(value_difference) / target)
        return self.weights.value_accuracy_weight * accuracy

    def score(self, candidate: BundleCandidate, target: float) -> float:
        """Compute, store and return the clamped match score."""
        products = candidate.products
        components = [self.component_score(p) for p in products]
        score = sum(components) / len(components)
        if len(products) == 1:
            score += self.value_accuracy(candidate.value_difference, target)
        elif target > 0:
            deviation = abs(candidate.value_difference) / target
            score += self.value_accuracy(0.0, target)
            score -= self.weights.penalty_per_unit_deviation * deviation

        candidate.match_score = round(max(SCORE_MIN, min(SCORE_MAX, score)), 2)
        candidate.category_match = all(p.category == self.category for p in products)
        candidate.affinity_match = any(p.subtype == self.subtype for p in products)

        logger.debug(
            "Score %s: components=%s diff=%.2f total=%.2f",
            candidate.id,
            [round(c, 1) for c in components],
            candidate.value_difference,
            candidate.match_score,
        )
        return candidate.match_score

    def score_all(
        self, candidates: Iterable[BundleCandidate], target: float
    ) -> None:
        for candidate in candidates:
            self.score(candidate, target)
