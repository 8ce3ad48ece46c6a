"""Foundational building blocks for offer analytics.

This package exposes the order/product records, timestamp parsing and
record loaders, as well as the RFM (Recency-Frequency-Monetary) snapshot.
"""

from .orders import (
    Order,
    OrderItem,
    ParseError,
    Product,
    orders_from_records,
    parse_timestamp,
    products_from_records,
)
from .rfm import CustomerSegment, RfmScore, calculate_rfm, classify_customer

__all__ = [
    "Order",
    "OrderItem",
    "ParseError",
    "Product",
    "orders_from_records",
    "parse_timestamp",
    "products_from_records",
    "CustomerSegment",
    "RfmScore",
    "calculate_rfm",
    "classify_customer",
]
