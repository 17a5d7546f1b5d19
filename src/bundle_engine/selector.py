"""Fair-mix selector.

Ranks each strategy's candidates and samples across both so neither
dominates the suggestion list:

1. Sort singles and pairs by score descending (stable: ties keep
   generation order, which follows candidate pool order)
2. Take top single_bucket_size singles and top multi_bucket_size pairs
3. Backfill from the remaining singles (never pairs) up to max_results
4. Re-sort by score and truncate to max_results
"""

from __future__ import annotations

import logging

from .models import BundleCandidate
from .policy import TargetPolicy

logger = logging.getLogger(__name__)


def _by_score(candidates: list[BundleCandidate]) -> list[BundleCandidate]:
    return sorted(candidates, key=lambda c: c.match_score, reverse=True)


class FairMixSelector:
    """Selects a bounded, mixed top-N from scored candidates."""

    def __init__(self, policy: TargetPolicy) -> None:
        self.policy = policy

    def select(
        self,
        singles: list[BundleCandidate],
        pairs: list[BundleCandidate],
    ) -> list[BundleCandidate]:
        """Merge scored single and pair candidates into the final ranking."""
        policy = self.policy
        ranked_singles = _by_score(singles)
        ranked_pairs = _by_score(pairs)

        single_take = policy.single_bucket_size
        mixed = ranked_singles[:single_take] + ranked_pairs[: policy.multi_bucket_size]

        if len(mixed) < policy.max_results:
            needed = policy.max_results - len(mixed)
            mixed += ranked_singles[single_take: single_take + needed]

        result = _by_score(mixed)[: policy.max_results]
        logger.debug(
            "Fair mix: %d singles, %d pairs -> %d suggestions",
            len(singles), len(pairs), len(result),
        )
        return result
