"""Product affinity scoring from a customer's order history.

Affinity expresses how strongly each product is associated with what the
customer bought most recently. Two signals contribute to a raw score:

- Co-purchase: products bought together in the same order reinforce each
  other, one point per distinct co-occurring product.
- Proximity: products from an order placed shortly before the latest order
  gain a bonus proportional to the size of the latest order, once per
  item line.

Products of the latest order itself (the "self-set") are never scored, and
raw scores are scaled by their maximum so the result lies in [0, 1].
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from customer_offer_engine.foundation.orders import Order, parse_timestamp

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)


@dataclass(frozen=True)
class AffinityConfig:
    """Weights for affinity scoring.

    Attributes
    ----------
    co_purchase_weight:
        Raw points per distinct product bought in the same order
    proximity_weight:
        Raw points per self-set product for items of a nearby order
    proximity_window_days:
        Largest whole-day gap to the latest order that still counts as
        nearby (inclusive)
    """

    co_purchase_weight: float = 1.0
    proximity_weight: float = 0.5
    proximity_window_days: int = 30

    def __post_init__(self) -> None:
        if self.co_purchase_weight < 0:
            raise ValueError(
                f"Co-purchase weight cannot be negative: {self.co_purchase_weight}"
            )
        if self.proximity_weight < 0:
            raise ValueError(
                f"Proximity weight cannot be negative: {self.proximity_weight}"
            )
        if self.proximity_window_days < 0:
            raise ValueError(
                f"Proximity window cannot be negative: {self.proximity_window_days}"
            )


def _normalise(raw_scores: dict[str, float]) -> dict[str, float]:
    """Scale scores by their maximum; all-zero input is returned unchanged."""
    if not raw_scores:
        return {}
    max_score = max(raw_scores.values())
    if max_score == 0:
        return dict(raw_scores)
    return {product_id: score / max_score for product_id, score in raw_scores.items()}


def calculate_affinity(
    orders: Sequence[Order],
    lookback_days: int,
    now: datetime | str,
    config: AffinityConfig | None = None,
) -> dict[str, float]:
    """Score every product seen in the lookback window.

    Parameters
    ----------
    orders:
        Orders to analyse, usually one customer's history
    lookback_days:
        Only orders placed at or after ``now - lookback_days`` are used
    now:
        Reference instant (datetime or ISO-8601 string)
    config:
        Scoring weights; defaults to :class:`AffinityConfig`

    Returns
    -------
    dict[str, float]
        Product id to score in [0, 1], in first-appearance order across the
        window sorted by time. Empty if no order falls in the window.

    Raises
    ------
    ParseError
        If ``now`` cannot be parsed.

    Examples
    --------
    >>> from decimal import Decimal
    >>> from customer_offer_engine.foundation.orders import OrderItem
    >>> earlier = Order("o1", "c1", "2025-10-20T00:00:00Z", Decimal("2000"), "JPY",
    ...                 (OrderItem("a", 1, Decimal("1000")), OrderItem("b", 1, Decimal("1000"))))
    >>> latest = Order("o2", "c1", "2025-10-31T00:00:00Z", Decimal("500"), "JPY",
    ...                (OrderItem("c", 1, Decimal("500")),))
    >>> calculate_affinity([earlier, latest], 180, "2025-11-02T00:00:00Z")
    {'a': 1.0, 'b': 1.0, 'c': 0.0}
    """
    config = config or AffinityConfig()
    now_ts = parse_timestamp(now)
    cutoff = now_ts - timedelta(days=lookback_days)

    window = sorted(
        (order for order in orders if order.ordered_at >= cutoff),
        key=lambda order: order.ordered_at,
    )
    if not window:
        return {}

    # Stable sort: among simultaneous orders the last one given is the latest
    latest_order = window[-1]
    self_set = set(latest_order.product_ids)

    raw_scores: dict[str, float] = {}
    for order in window:
        for item in order.items:
            raw_scores.setdefault(item.product_id, 0.0)

    # Co-purchase
    for order in window:
        product_ids = order.product_ids
        partners = len(product_ids) - 1
        if partners <= 0:
            continue
        for product_id in product_ids:
            raw_scores[product_id] += config.co_purchase_weight * partners

    # Proximity to the latest order
    proximity_bonus = len(self_set) * config.proximity_weight
    for order in window:
        if order is latest_order:
            continue
        days_diff = (latest_order.ordered_at - order.ordered_at) // DAY
        if not 0 < days_diff <= config.proximity_window_days:
            continue
        for item in order.items:
            if item.product_id not in self_set:
                raw_scores[item.product_id] += proximity_bonus

    for product_id in self_set:
        raw_scores[product_id] = 0.0

    logger.debug(
        f"Affinity over {len(window)} orders: {len(raw_scores)} products, "
        f"self-set size {len(self_set)}"
    )
    return _normalise(raw_scores)
