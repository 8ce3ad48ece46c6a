"""Pandas DataFrame adapters for offer analytics components."""

from .orders import dataframe_to_orders, dataframe_to_products, orders_to_dataframe
from .offers import (
    affinity_to_dataframe,
    calculate_rfm_by_customer,
    calculate_rfm_df,
    product_names,
    recommendations_to_dataframe,
    rfm_to_dataframe,
)

__all__ = [
    # Record adapters
    "dataframe_to_orders",
    "dataframe_to_products",
    "orders_to_dataframe",
    # RFM adapters
    "calculate_rfm_by_customer",
    "calculate_rfm_df",
    "rfm_to_dataframe",
    # Affinity / next-best-offer adapters
    "affinity_to_dataframe",
    "product_names",
    "recommendations_to_dataframe",
]
