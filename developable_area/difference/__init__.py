"""Robust polygon difference: remote, local exact and approximate tiers."""

from .approximate import approximate_difference, boundary_crossings
from .engine import TIER_APPROXIMATE, TIER_LOCAL, TIER_REMOTE, DifferenceEngine
from .local import degenerate_reason, inverse_difference, local_difference
from .remote import remote_difference

__all__ = [
    "DifferenceEngine",
    "TIER_REMOTE",
    "TIER_LOCAL",
    "TIER_APPROXIMATE",
    "remote_difference",
    "local_difference",
    "degenerate_reason",
    "inverse_difference",
    "approximate_difference",
    "boundary_crossings",
]
