"""Pandas DataFrame adapters for order and product records."""

from typing import List, Sequence

import pandas as pd  # type: ignore

from customer_offer_engine.foundation.orders import Order, OrderItem, Product
from ._utils import decimal_to_float, float_to_decimal

ORDER_LINE_COLUMNS = [
    "order_id",
    "customer_id",
    "ordered_at",
    "total_amount",
    "currency",
    "product_id",
    "quantity",
    "unit_price",
]


def orders_to_dataframe(orders: Sequence[Order]) -> pd.DataFrame:
    """Convert orders to a line-item DataFrame.

    Args:
        orders: Sequence of Order objects

    Returns:
        DataFrame with one row per order item and columns: order_id,
        customer_id, ordered_at, total_amount, currency, product_id,
        quantity, unit_price. Orders without items produce a single row
        whose item columns are null.
    """
    rows = []
    for order in orders:
        header = {
            "order_id": order.order_id,
            "customer_id": order.customer_id,
            "ordered_at": order.ordered_at,
            "total_amount": decimal_to_float(order.total_amount),
            "currency": order.currency,
        }
        if not order.items:
            rows.append({**header, "product_id": None, "quantity": None, "unit_price": None})
            continue
        for item in order.items:
            rows.append(
                {
                    **header,
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "unit_price": decimal_to_float(item.unit_price),
                }
            )

    if not rows:
        return pd.DataFrame(columns=ORDER_LINE_COLUMNS)
    return pd.DataFrame(rows, columns=ORDER_LINE_COLUMNS)


def dataframe_to_orders(
    lines_df: pd.DataFrame,
    order_id_col: str = "order_id",
    customer_id_col: str = "customer_id",
    ordered_at_col: str = "ordered_at",
    product_id_col: str = "product_id",
    quantity_col: str = "quantity",
    unit_price_col: str = "unit_price",
    total_amount_col: str = "total_amount",
    currency_col: str = "currency",
) -> List[Order]:
    """Convert a line-item DataFrame to Order objects.

    Rows are grouped by order id. Item order follows row order, which
    matters for next-best-offer (the last item of the latest order is the
    anchor). ``total_amount`` and ``currency`` columns are optional: totals
    default to the sum of line totals and currency to ``"JPY"``. Rows with a
    null product id contribute no item.

    Args:
        lines_df: DataFrame with one row per order item
        *_col: Column name mappings for flexibility

    Returns:
        List of Order objects in order of first appearance

    Raises:
        ValueError: If DataFrame missing required columns or has null values
            in the order id, customer id or timestamp columns
        ParseError: If a timestamp cannot be parsed

    Example:
        >>> lines_df = pd.read_csv("order_lines.csv")
        >>> orders = dataframe_to_orders(lines_df, ordered_at_col="created_at")
    """
    required_cols = [
        order_id_col,
        customer_id_col,
        ordered_at_col,
        product_id_col,
        quantity_col,
        unit_price_col,
    ]
    missing_cols = set(required_cols) - set(lines_df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {missing_cols}")

    if lines_df.empty:
        return []

    key_cols = [order_id_col, customer_id_col, ordered_at_col]
    null_cols = lines_df[key_cols].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(
            f"Null/NaN values found in columns: {null_col_names}. "
            "Orders require an id, a customer and a timestamp."
        )

    has_total = total_amount_col in lines_df.columns
    has_currency = currency_col in lines_df.columns

    grouped: dict[str, dict] = {}
    for record in lines_df.to_dict("records"):
        order_id = str(record[order_id_col])
        ordered_at = record[ordered_at_col]
        if isinstance(ordered_at, pd.Timestamp):
            ordered_at = ordered_at.to_pydatetime()
        bucket = grouped.setdefault(
            order_id,
            {
                "customer_id": str(record[customer_id_col]),
                "ordered_at": ordered_at,
                "total_amount": record[total_amount_col] if has_total else None,
                "currency": record[currency_col] if has_currency else None,
                "items": [],
            },
        )
        if pd.isna(record[product_id_col]):
            continue
        bucket["items"].append(
            OrderItem(
                product_id=str(record[product_id_col]),
                quantity=int(record[quantity_col]),
                unit_price=float_to_decimal(record[unit_price_col]),
            )
        )

    orders = []
    for order_id, payload in grouped.items():
        items = tuple(payload["items"])
        if payload["total_amount"] is None or pd.isna(payload["total_amount"]):
            total_amount = sum((item.line_total for item in items), float_to_decimal(0))
        else:
            total_amount = float_to_decimal(payload["total_amount"])
        currency = payload["currency"]
        if currency is None or pd.isna(currency):
            currency = "JPY"
        orders.append(
            Order(
                order_id=order_id,
                customer_id=payload["customer_id"],
                ordered_at=payload["ordered_at"],
                total_amount=total_amount,
                currency=str(currency),
                items=items,
            )
        )
    return orders


def dataframe_to_products(products_df: pd.DataFrame) -> List[Product]:
    """Convert a catalog DataFrame to Product objects.

    Required columns: product_id, name, price. Optional columns: sku
    (defaults to product_id), category and cost (null means absent).

    Raises:
        ValueError: If DataFrame missing required columns or has null values
            in them
    """
    required_cols = ["product_id", "name", "price"]
    missing_cols = set(required_cols) - set(products_df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {missing_cols}")

    if products_df.empty:
        return []

    null_cols = products_df[required_cols].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(f"Null/NaN values found in columns: {null_col_names}.")

    products = []
    for record in products_df.to_dict("records"):
        sku = record.get("sku")
        category = record.get("category")
        cost = record.get("cost")
        products.append(
            Product(
                product_id=str(record["product_id"]),
                sku=str(record["product_id"]) if sku is None or pd.isna(sku) else str(sku),
                name=str(record["name"]),
                price=float_to_decimal(record["price"]),
                category=None if category is None or pd.isna(category) else str(category),
                cost=None if cost is None or pd.isna(cost) else float_to_decimal(cost),
            )
        )
    return products
