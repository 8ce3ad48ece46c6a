"""RFM (Recency-Frequency-Monetary) calculation for a single customer.

RFM summarises a customer's purchase history along three dimensions:
- Recency: How many days since the most recent purchase?
- Frequency: How many orders in the trailing 90 days?
- Monetary: How much was spent in the trailing 180 days?

The snapshot is reported independently of next-best-offer selection and
feeds the simple customer segmentation in :func:`classify_customer`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence

from customer_offer_engine.foundation.orders import Order, parse_timestamp

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)

# Trailing windows (inclusive of the boundary instant)
FREQUENCY_WINDOW_DAYS = 90
MONETARY_WINDOW_DAYS = 180


@dataclass(frozen=True)
class RfmScore:
    """RFM snapshot for one customer.

    Attributes
    ----------
    recency_days:
        Whole days (rounded up) since the latest order, or ``math.inf``
        when the customer has no orders
    frequency_90d:
        Number of orders placed in the trailing 90 days
    monetary_180d:
        Sum of order totals in the trailing 180 days
    """

    recency_days: float
    frequency_90d: int
    monetary_180d: Decimal

    def __post_init__(self) -> None:
        """Validate RFM score."""
        if self.recency_days < 0:
            raise ValueError(f"Recency cannot be negative: {self.recency_days}")
        if self.frequency_90d < 0:
            raise ValueError(f"Frequency cannot be negative: {self.frequency_90d}")
        if self.monetary_180d < 0:
            raise ValueError(
                f"Monetary value cannot be negative: {self.monetary_180d}"
            )

    @property
    def has_orders(self) -> bool:
        return not math.isinf(self.recency_days)

    def as_dict(self) -> dict[str, Any]:
        """Return JSON-serialisable representation (infinite recency as None)."""
        return {
            "recency_days": int(self.recency_days) if self.has_orders else None,
            "frequency_90d": self.frequency_90d,
            "monetary_180d": str(self.monetary_180d),
        }


class CustomerSegment(str, Enum):
    """Coarse customer tiers derived from an RFM snapshot."""

    LOYAL = "loyal"
    REPEAT = "repeat"
    DORMANT = "dormant"
    NEW = "new"


def calculate_rfm(orders: Sequence[Order], now: datetime | str) -> RfmScore:
    """Calculate the RFM snapshot of one customer's orders.

    Parameters
    ----------
    orders:
        Orders of a single customer in any order. Callers filter by
        customer beforehand.
    now:
        Reference instant (datetime or ISO-8601 string)

    Returns
    -------
    RfmScore
        ``recency_days`` is ``math.inf`` and the other fields are zero when
        ``orders`` is empty. Orders dated after ``now`` yield a recency of 0.

    Raises
    ------
    ParseError
        If ``now`` cannot be parsed.

    Examples
    --------
    >>> from decimal import Decimal
    >>> order = Order("o1", "c1", "2025-11-01T00:00:00Z", Decimal("1000"), "JPY")
    >>> score = calculate_rfm([order], "2025-11-02T00:00:00Z")
    >>> (score.recency_days, score.frequency_90d, score.monetary_180d)
    (1, 1, Decimal('1000'))
    """
    now_ts = parse_timestamp(now)

    if not orders:
        return RfmScore(
            recency_days=math.inf, frequency_90d=0, monetary_180d=Decimal("0")
        )

    latest = max(order.ordered_at for order in orders)
    recency_days = math.ceil((now_ts - latest) / DAY)
    if recency_days < 0:
        logger.warning(
            f"Latest order {latest.isoformat()} is after reference time "
            f"{now_ts.isoformat()}; clamping recency to 0"
        )
        recency_days = 0

    frequency_cutoff = now_ts - timedelta(days=FREQUENCY_WINDOW_DAYS)
    monetary_cutoff = now_ts - timedelta(days=MONETARY_WINDOW_DAYS)

    frequency_90d = sum(1 for order in orders if order.ordered_at >= frequency_cutoff)
    monetary_180d = sum(
        (order.total_amount for order in orders if order.ordered_at >= monetary_cutoff),
        Decimal("0"),
    )

    return RfmScore(
        recency_days=recency_days,
        frequency_90d=frequency_90d,
        monetary_180d=monetary_180d,
    )


def classify_customer(rfm: RfmScore) -> CustomerSegment:
    """Assign a customer segment from an RFM snapshot.

    Rules are evaluated in order:

    1. ``LOYAL``: at least 3 orders in 90 days and last order within 30 days
    2. ``DORMANT``: last order more than 90 days ago (or never)
    3. ``REPEAT``: at least 2 orders in 90 days
    4. ``NEW``: everything else
    """
    if rfm.frequency_90d >= 3 and rfm.recency_days <= 30:
        return CustomerSegment.LOYAL
    if rfm.recency_days > 90:
        return CustomerSegment.DORMANT
    if rfm.frequency_90d >= 2:
        return CustomerSegment.REPEAT
    return CustomerSegment.NEW
