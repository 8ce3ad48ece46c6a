"""Next-best-offer selection.

Picks a single product to offer a customer, anchored on the last item of
their most recent order:

1. Candidates share the anchor's category, sit within a price band around
   the anchor's price and were not part of that latest order.
2. Candidates are ranked by affinity (highest first), then by closeness to
   the anchor price, then by display name, giving a total order.

A missing history, an unknown or uncategorised anchor product and an empty
candidate list are ordinary outcomes and yield ``None``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Sequence

from customer_offer_engine.analyses.affinity import AffinityConfig, calculate_affinity
from customer_offer_engine.foundation.orders import Order, Product, parse_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NboConfig:
    """Configuration for next-best-offer selection.

    Attributes
    ----------
    lookback_days:
        Affinity lookback window in days
    price_band:
        Relative half-width of the candidate price band; 0.2 admits prices
        from 80% to 120% of the anchor price (inclusive)
    affinity:
        Weights passed on to affinity scoring
    """

    lookback_days: int = 180
    price_band: Decimal = Decimal("0.2")
    affinity: AffinityConfig = field(default_factory=AffinityConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "price_band", Decimal(str(self.price_band)))
        if self.lookback_days < 0:
            raise ValueError(f"Lookback days cannot be negative: {self.lookback_days}")
        if not Decimal("0") <= self.price_band < Decimal("1"):
            raise ValueError(f"Price band must be in [0, 1): {self.price_band}")


@dataclass(frozen=True)
class NboRecommendation:
    """A single product recommendation.

    Attributes
    ----------
    customer_id:
        Customer the offer is for
    product_id:
        Recommended product
    reason:
        Human-readable justification naming the anchor category, the price
        band and the affinity score
    score:
        Affinity score of the recommended product, in [0, 1]
    price:
        Catalog price of the recommended product
    profit_est:
        ``price - cost`` when the product has a cost, otherwise ``None``
    """

    customer_id: str
    product_id: str
    reason: str
    score: float
    price: Decimal
    profit_est: Decimal | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return JSON-serialisable representation."""
        return {
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "reason": self.reason,
            "score": self.score,
            "price": str(self.price),
            "profit_est": str(self.profit_est) if self.profit_est is not None else None,
        }


@dataclass(frozen=True)
class _Candidate:
    product: Product
    score: float
    price_diff: Decimal

    def sort_key(self) -> tuple[float, Decimal, str]:
        return (-self.score, self.price_diff, self.product.name)


def _format_reason(
    category: str, price_band: Decimal, price_min: Decimal, price_max: Decimal, score: float
) -> str:
    band_pct = f"{price_band * 100:.0f}"
    return (
        f"Recent purchase category: {category} / "
        f"Price range: ±{band_pct}% ({price_min:.0f}-{price_max:.0f}) / "
        f"Affinity score: {score:.2f}"
    )


def next_best_offer(
    customer_id: str,
    orders: Sequence[Order],
    products: Sequence[Product],
    now: datetime | str,
    config: NboConfig | None = None,
) -> NboRecommendation | None:
    """Select the next best offer for one customer.

    Parameters
    ----------
    customer_id:
        Customer to recommend for
    orders:
        Order history; may contain other customers' orders
    products:
        Product catalog. When ids repeat, the first entry wins.
    now:
        Reference instant (datetime or ISO-8601 string)
    config:
        Selection settings; defaults to :class:`NboConfig`

    Returns
    -------
    NboRecommendation | None
        The top-ranked candidate, or ``None`` when no eligible candidate
        exists.

    Raises
    ------
    ParseError
        If ``now`` cannot be parsed.
    """
    config = config or NboConfig()
    now_ts = parse_timestamp(now)

    customer_orders = [order for order in orders if order.customer_id == customer_id]
    if not customer_orders:
        logger.debug(f"No orders for customer {customer_id}")
        return None

    latest_order = max(customer_orders, key=lambda order: order.ordered_at)
    if not latest_order.items:
        logger.debug(f"Latest order {latest_order.order_id} has no items")
        return None

    catalog: dict[str, Product] = {}
    for product in products:
        catalog.setdefault(product.product_id, product)

    # The anchor is positional: the last line of the latest order
    base_item = latest_order.items[-1]
    base_product = catalog.get(base_item.product_id)
    if base_product is None:
        logger.warning(
            f"Product {base_item.product_id} from order {latest_order.order_id} "
            "is not in the catalog"
        )
        return None
    if base_product.category is None:
        logger.debug(f"Product {base_product.product_id} has no category")
        return None

    base_category = base_product.category
    base_price = base_product.price
    price_min = base_price * (1 - config.price_band)
    price_max = base_price * (1 + config.price_band)
    purchased = set(latest_order.product_ids)

    eligible = [
        product
        for product in catalog.values()
        if product.product_id not in purchased
        and product.category == base_category
        and price_min <= product.price <= price_max
    ]
    if not eligible:
        logger.debug(
            f"No candidates in {base_category} between {price_min} and {price_max}"
        )
        return None

    affinity = calculate_affinity(
        customer_orders, config.lookback_days, now_ts, config=config.affinity
    )
    candidates = [
        _Candidate(
            product=product,
            score=affinity.get(product.product_id, 0.0),
            price_diff=abs(product.price - base_price),
        )
        for product in eligible
    ]
    best = min(candidates, key=_Candidate.sort_key)
    winner = best.product

    profit_est = winner.price - winner.cost if winner.cost is not None else None
    reason = _format_reason(
        base_category, config.price_band, price_min, price_max, best.score
    )

    logger.debug(
        f"Customer {customer_id}: {winner.product_id} chosen from "
        f"{len(candidates)} candidates (score={best.score:.2f})"
    )
    return NboRecommendation(
        customer_id=customer_id,
        product_id=winner.product_id,
        reason=reason,
        score=best.score,
        price=winner.price,
        profit_est=profit_est,
    )


def next_best_offers(
    customer_ids: Iterable[str],
    orders: Sequence[Order],
    products: Sequence[Product],
    now: datetime | str,
    config: NboConfig | None = None,
) -> dict[str, NboRecommendation | None]:
    """Run :func:`next_best_offer` for several customers.

    Duplicate customer ids are evaluated once; the result preserves the
    order in which ids were first given.
    """
    now_ts = parse_timestamp(now)
    return {
        customer_id: next_best_offer(customer_id, orders, products, now_ts, config)
        for customer_id in dict.fromkeys(customer_ids)
    }
