"""Offer analyses built on the foundation records.

1. Affinity - normalised co-purchase and proximity scores per product
2. Next best offer - single-product recommendation anchored on the latest order
"""

from .affinity import AffinityConfig, calculate_affinity
from .nbo import NboConfig, NboRecommendation, next_best_offer, next_best_offers

__all__ = [
    # Affinity
    "AffinityConfig",
    "calculate_affinity",
    # Next best offer
    "NboConfig",
    "NboRecommendation",
    "next_best_offer",
    "next_best_offers",
]
