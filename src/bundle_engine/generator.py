"""Bundle generator: single-product and two-product strategies.

Both strategies run against the same target and acceptance test and
return unscored, unordered candidate lists. Generation order is
deterministic: singles in pool order, pairs in (i, j, q1, q2) order.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Sequence

from src.common.models import LineItem, Product

from .models import BundleCandidate
from .policy import TargetPolicy, accepts

logger = logging.getLogger(__name__)


class CalculationAborted(RuntimeError):
    """Raised when the caller sets the abort handle mid-calculation."""


class BundleGenerator:
    """Produces candidate bundles for a target value.

    Usage:
        generator = BundleGenerator(policy)
        singles, pairs = generator.generate(pool, target)
    """

    def __init__(self, policy: TargetPolicy) -> None:
        self.policy = policy

    def generate(
        self,
        pool: Sequence[Product],
        target: float,
        abort: threading.Event | None = None,
    ) -> tuple[list[BundleCandidate], list[BundleCandidate]]:
        """Run both strategies.

        Returns:
            (single-product candidates, pair candidates)
        """
        if target <= 0 or not pool:
            return [], []
        singles = self.single_product_candidates(pool, target)
        pairs = self.pair_candidates(pool, target, abort=abort)
        logger.debug(
            "Generated %d single and %d pair candidates for target %.2f",
            len(singles), len(pairs), target,
        )
        return singles, pairs

    def single_product_candidates(
        self, pool: Sequence[Product], target: float
    ) -> list[BundleCandidate]:
        """One product, quantity = max(1, ceil(target / price))."""
        candidates: list[BundleCandidate] = []
        for product in pool:
            if product.price <= 0:
                # Unit price unknown; cannot derive a quantity
                logger.debug("Skipping zero-price product %s", product.id)
                continue
            # Rounded first so float noise (3.0000000001) does not add a unit
            quantity = max(1, math.ceil(round(target / product.price, 9)))
            total = product.price * quantity
            if not accepts(total, target, self.policy):
                continue
            candidates.append(
                BundleCandidate(
                    id=f"single-{product.id}",
                    items=[LineItem(product=product, quantity=quantity)],
                    total_value=total,
                    value_difference=total - target,
                    strategy="single",
                )
            )
        return candidates

    def pair_candidates(
        self,
        pool: Sequence[Product],
        target: float,
        abort: threading.Event | None = None,
    ) -> list[BundleCandidate]:
        """Two distinct products, each quantity in [1, max_quantity_per_item].

        Only the first max_pair_candidates priced products are paired.
        """
        priced = [p for p in pool if p.price > 0]
        bounded = priced[: self.policy.max_pair_candidates]
        max_q = self.policy.max_quantity_per_item

        candidates: list[BundleCandidate] = []
        for i, p1 in enumerate(bounded):
            if abort is not None and abort.is_set():
                raise CalculationAborted(
                    f"Pair generation aborted after {i}/{len(bounded)} rows"
                )
            for p2 in bounded[i + 1:]:
                for q1 in range(1, max_q + 1):
                    for q2 in range(1, max_q + 1):
                        total = p1.price * q1 + p2.price * q2
                        if not accepts(total, target, self.policy):
                            continue
                        candidates.append(
                            BundleCandidate(
                                id=f"pair-{p1.id}-{p2.id}-{q1}-{q2}",
                                items=[
                                    LineItem(product=p1, quantity=q1),
                                    LineItem(product=p2, quantity=q2),
                                ],
                                total_value=total,
                                value_difference=total - target,
                                strategy="pair",
                            )
                        )
        return candidates
