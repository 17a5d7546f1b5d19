"""Replacement Bundle Engine: proposes replacement bundles for shelf removals.

Given products removed from a shelf, proposes single- and two-product
bundles whose value approximates a policy target, ranked by category /
subtype affinity and value accuracy.
"""

from .generator import BundleGenerator, CalculationAborted
from .manual_builder import ManualBundleBuilder
from .models import BundleCandidate, RemovalSet, SuggestionResult
from .pipeline import ReplacementPipeline
from .policy import ScoringWeights, TargetPolicy, compute_target, load_policy

__all__ = [
    "BundleCandidate",
    "BundleGenerator",
    "CalculationAborted",
    "ManualBundleBuilder",
    "RemovalSet",
    "ReplacementPipeline",
    "ScoringWeights",
    "SuggestionResult",
    "TargetPolicy",
    "compute_target",
    "load_policy",
]
