"""Pandas DataFrame adapters for RFM, affinity and next-best-offer results."""

from datetime import datetime
from typing import Mapping, Optional, Sequence

import pandas as pd  # type: ignore

from customer_offer_engine.analyses.nbo import NboRecommendation
from customer_offer_engine.foundation.orders import Order, Product
from customer_offer_engine.foundation.rfm import (
    RfmScore,
    calculate_rfm,
    classify_customer,
)
from ._utils import decimal_to_float
from .orders import dataframe_to_orders

RFM_COLUMNS = [
    "customer_id",
    "recency_days",
    "frequency_90d",
    "monetary_180d",
    "segment",
]

AFFINITY_COLUMNS = ["product_id", "name", "score"]

RECOMMENDATION_COLUMNS = [
    "customer_id",
    "product_id",
    "score",
    "price",
    "profit_est",
    "reason",
]


def rfm_to_dataframe(rfm_scores: Mapping[str, RfmScore]) -> pd.DataFrame:
    """Convert per-customer RFM scores to a DataFrame.

    Args:
        rfm_scores: Mapping of customer_id to RfmScore

    Returns:
        DataFrame with columns: customer_id, recency_days, frequency_90d,
        monetary_180d, segment, sorted by customer_id. Customers without
        orders keep ``inf`` recency.
    """
    if not rfm_scores:
        return pd.DataFrame(columns=RFM_COLUMNS)

    rows = [
        {
            "customer_id": customer_id,
            "recency_days": score.recency_days,
            "frequency_90d": score.frequency_90d,
            "monetary_180d": decimal_to_float(score.monetary_180d),
            "segment": classify_customer(score).value,
        }
        for customer_id, score in rfm_scores.items()
    ]
    df = pd.DataFrame(rows, columns=RFM_COLUMNS)
    return df.sort_values("customer_id").reset_index(drop=True)


def calculate_rfm_by_customer(
    orders: Sequence[Order], now: datetime | str
) -> dict[str, RfmScore]:
    """Group orders by customer and compute each customer's RFM snapshot."""
    by_customer: dict[str, list[Order]] = {}
    for order in orders:
        by_customer.setdefault(order.customer_id, []).append(order)
    return {
        customer_id: calculate_rfm(customer_orders, now)
        for customer_id, customer_orders in by_customer.items()
    }


def calculate_rfm_df(
    lines_df: pd.DataFrame,
    now: datetime | str,
    order_id_col: str = "order_id",
    customer_id_col: str = "customer_id",
    ordered_at_col: str = "ordered_at",
    product_id_col: str = "product_id",
    quantity_col: str = "quantity",
    unit_price_col: str = "unit_price",
    total_amount_col: str = "total_amount",
) -> pd.DataFrame:
    """Calculate RFM snapshots for every customer in a line-item DataFrame.

    Convenience function that combines conversion and calculation.

    Args:
        lines_df: DataFrame with one row per order item
        now: Reference instant for the trailing windows
        *_col: Column name mappings for flexibility

    Returns:
        DataFrame with RFM columns and the derived customer segment

    Example:
        >>> lines_df = pd.read_csv("order_lines.csv")
        >>> rfm_df = calculate_rfm_df(lines_df, "2025-11-02T00:00:00Z")
        >>> dormant = rfm_df[rfm_df["segment"] == "dormant"]
    """
    orders = dataframe_to_orders(
        lines_df,
        order_id_col=order_id_col,
        customer_id_col=customer_id_col,
        ordered_at_col=ordered_at_col,
        product_id_col=product_id_col,
        quantity_col=quantity_col,
        unit_price_col=unit_price_col,
        total_amount_col=total_amount_col,
    )
    return rfm_to_dataframe(calculate_rfm_by_customer(orders, now))


def affinity_to_dataframe(
    scores: Mapping[str, float],
    products: Optional[Sequence[Product]] = None,
) -> pd.DataFrame:
    """Convert an affinity mapping to a DataFrame ranked by score.

    Args:
        scores: Product id to affinity score
        products: Optional catalog used to fill the ``name`` column

    Returns:
        DataFrame with columns product_id, name, score, sorted by score
        descending. Ties keep the mapping's order. ``name`` is an object
        column holding ``None`` for products missing from the catalog.
    """
    if not scores:
        return pd.DataFrame(columns=AFFINITY_COLUMNS)

    names = product_names(products or ())
    df = pd.DataFrame(
        {
            "product_id": list(scores),
            # object dtype keeps None; string inference would turn it into NaN
            "name": pd.Series(
                [names.get(product_id) for product_id in scores], dtype=object
            ),
            "score": [float(score) for score in scores.values()],
        },
        columns=AFFINITY_COLUMNS,
    )
    return df.sort_values("score", ascending=False, kind="stable").reset_index(
        drop=True
    )


def product_names(products: Sequence[Product]) -> dict[str, str]:
    """Map product id to name; the first product with a given id wins."""
    names: dict[str, str] = {}
    for product in products:
        names.setdefault(product.product_id, product.name)
    return names


def recommendations_to_dataframe(
    recommendations: Sequence[NboRecommendation],
) -> pd.DataFrame:
    """Convert recommendations to a DataFrame, one row per customer.

    Returns:
        DataFrame with columns customer_id, product_id, score, price,
        profit_est (null when the product has no cost) and reason
    """
    if not recommendations:
        return pd.DataFrame(columns=RECOMMENDATION_COLUMNS)

    rows = [
        {
            "customer_id": rec.customer_id,
            "product_id": rec.product_id,
            "score": rec.score,
            "price": decimal_to_float(rec.price),
            "profit_est": decimal_to_float(rec.profit_est),
            "reason": rec.reason,
        }
        for rec in recommendations
    ]
    return pd.DataFrame(rows, columns=RECOMMENDATION_COLUMNS)
