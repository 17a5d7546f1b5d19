"""Target policy: monetary target, tolerance band and scoring weights.

One engine, several configurations. A value-for-value replacement and a
small top-up exchange differ only in their TargetPolicy.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from src.common.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class ScoringWeights(BaseModel):
    """Weights for the bundle scorer.

    With the defaults a same-category, same-subtype, exact-value match
    reaches exactly 100: 40 + 20 + 10 + 30.
    """
    base_score: float = 40.0
    category_bonus: float = 20.0
    category_penalty: float = 20.0
    affinity_bonus: float = 10.0
    value_accuracy_weight: float = 30.0
    penalty_per_unit_deviation: float = 15.0

    model_config = {"frozen": True}


class TargetPolicy(BaseModel):
    """Immutable per-computation policy."""
    name: str = "replacement"
    target_fraction: float = Field(default=1.0, gt=0, le=1)
    tolerance_factor: float = Field(default=0.2, ge=0)
    lower_bound_factor: float = Field(default=1.0, ge=0)
    max_pair_candidates: int = Field(default=30, ge=0)
    max_quantity_per_item: int = Field(default=8, ge=1)
    single_bucket_size: int = Field(default=2, ge=0)
    multi_bucket_size: int = Field(default=3, ge=0)
    max_results: int = Field(default=5, ge=0)
    strict_category_filter: bool = True
    scoring_weights: ScoringWeights = Field(default_factory=ScoringWeights)

    model_config = {"frozen": True}


def compute_target(removed_value: float, policy: TargetPolicy) -> float:
    """Target value = removed value x target fraction (0 for zero removal)."""
    if removed_value <= 0:
        return 0.0
    return removed_value * policy.target_fraction


def tolerance_band(target: float, policy: TargetPolicy) -> tuple[float, float]:
    """Return (max absolute deviation, lower acceptance bound) for a target."""
    return target * policy.tolerance_factor, target * policy.lower_bound_factor


def accepts(total_value: float, target: float, policy: TargetPolicy) -> bool:
    """Acceptance test shared by every generation strategy.

    Accepted when within the symmetric tolerance band, or at/above the
    lower bound; overshooting is preferred to undershooting.
    """
    max_diff, lower_bound = tolerance_band(target, policy)
    return abs(total_value - target) <= max_diff or total_value >= lower_bound


def progress_percent(total_value: float, target: float) -> float:
    """Progress towards the target in percent, capped at 100."""
    if target <= 0:
        return 100.0
    return min(100.0, total_value / target * 100)


def load_policy(name: str | None = None, settings: Settings | None = None) -> TargetPolicy:
    """Resolve a named policy preset from settings.

    Args:
        name: Preset name (e.g. "replacement", "top_up"). Defaults to
              settings.default_policy.
        settings: Settings to read presets from. Defaults to the singleton.

    Returns:
        TargetPolicy instance.

    Raises:
        KeyError: If the preset is unknown.
    """
    settings = settings or default_settings
    name = name or settings.default_policy
    presets = dict(BUILTIN_POLICIES)
    presets.update(settings.policies)
    if name not in presets:
        raise KeyError(f"Unknown policy '{name}'. Available: {sorted(presets)}")
    data = {"name": name, **presets[name]}
    policy = TargetPolicy(**data)
    logger.debug("Loaded policy %s: %s", name, policy)
    return policy


# Built-in presets; config/settings.yaml may override or extend them
BUILTIN_POLICIES: dict[str, dict] = {
    "replacement": {
        "target_fraction": 1.0,
        "tolerance_factor": 0.2,
        "lower_bound_factor": 1.0,
    },
    "top_up": {
        "target_fraction": 0.1,
        "tolerance_factor": 0.25,
        "lower_bound_factor": 1.0,
        "max_quantity_per_item": 4,
        "scoring_weights": {
            "base_score": 45.0,
            "category_bonus": 15.0,
            "category_penalty": 25.0,
            "affinity_bonus": 5.0,
            "value_accuracy_weight": 35.0,
            "penalty_per_unit_deviation": 20.0,
        },
    },
}
