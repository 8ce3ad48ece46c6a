"""Order, product and line-item records shared by every analysis.

The records are immutable snapshots supplied by the caller. Timestamps are
normalised to aware UTC datetimes on construction so that all downstream
arithmetic compares absolute instants.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping


class ParseError(ValueError):
    """Raised when a timestamp cannot be interpreted as an instant."""


def parse_timestamp(value: datetime | str) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Parameters
    ----------
    value:
        A ``datetime`` (naive values are taken to be UTC) or an ISO-8601
        string in any form ``datetime.fromisoformat`` reads, fractional
        seconds and a trailing ``Z`` designator included.

    Raises
    ------
    ParseError
        If the value is not a datetime or a parsable ISO-8601 string.

    Examples
    --------
    >>> parse_timestamp("2025-11-02T00:00:00Z").isoformat()
    '2025-11-02T00:00:00+00:00'
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ParseError(f"Unparsable timestamp: {value!r}") from exc
    else:
        raise ParseError(
            f"Timestamp must be a datetime or ISO-8601 string, got {type(value).__name__}"
        )

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError(f"{name} must be numeric, got bool")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} is not numeric: {value!r}") from exc


@dataclass(frozen=True)
class OrderItem:
    """A single line of an order.

    Attributes
    ----------
    product_id:
        Identifier of the purchased product
    quantity:
        Number of units (positive)
    unit_price:
        Price per unit in the order's currency (non-negative)
    """

    product_id: str
    quantity: int
    unit_price: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit_price", _to_decimal(self.unit_price, "unit_price"))
        if self.quantity <= 0:
            raise ValueError(
                f"Quantity must be positive: {self.quantity} (product_id={self.product_id})"
            )
        if self.unit_price < 0:
            raise ValueError(
                f"Unit price cannot be negative: {self.unit_price} (product_id={self.product_id})"
            )

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Order:
    """A customer order.

    Attributes
    ----------
    order_id:
        Unique order identifier
    customer_id:
        Identifier of the ordering customer
    ordered_at:
        Instant the order was placed, normalised to UTC. Strings are parsed
        as ISO-8601 and naive datetimes are taken to be UTC.
    total_amount:
        Order total (currency-agnostic)
    currency:
        Currency code of ``total_amount`` and the item prices
    items:
        Line items in the order they were recorded. Position matters: the
        last item of a customer's latest order drives next-best-offer.
    """

    order_id: str
    customer_id: str
    ordered_at: datetime
    total_amount: Decimal
    currency: str
    items: tuple[OrderItem, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ordered_at", parse_timestamp(self.ordered_at))
        object.__setattr__(
            self, "total_amount", _to_decimal(self.total_amount, "total_amount")
        )
        object.__setattr__(self, "items", tuple(self.items))
        if self.total_amount < 0:
            raise ValueError(
                f"Total amount cannot be negative: {self.total_amount} (order_id={self.order_id})"
            )

    @property
    def product_ids(self) -> list[str]:
        """Distinct product ids in item order."""
        return list(dict.fromkeys(item.product_id for item in self.items))


@dataclass(frozen=True)
class Product:
    """A catalog entry.

    Attributes
    ----------
    product_id:
        Unique product identifier
    sku:
        Stock keeping unit
    name:
        Display name, used as the final ranking tie-breaker
    category:
        Optional category. Products without one never take part in
        category matching.
    price:
        List price (non-negative)
    cost:
        Optional unit cost. When absent no profit estimate is produced.
    """

    product_id: str
    sku: str
    name: str
    price: Decimal
    category: str | None = None
    cost: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", _to_decimal(self.price, "price"))
        if self.cost is not None:
            object.__setattr__(self, "cost", _to_decimal(self.cost, "cost"))
        if self.price < 0:
            raise ValueError(
                f"Price cannot be negative: {self.price} (product_id={self.product_id})"
            )


#: Keys every raw order record must populate.
ORDER_REQUIRED_FIELDS = ("order_id", "customer_id", "ordered_at")

#: Keys every raw product record must populate.
PRODUCT_REQUIRED_FIELDS = ("product_id", "name", "price")


def _check_required(
    data: Mapping[str, Any], required: tuple[str, ...], idx: int
) -> None:
    missing = [name for name in required if data.get(name) in (None, "")]
    if missing:
        raise ValueError(
            "Record missing required fields",
            {"missing_fields": missing, "record_index": idx},
        )


def orders_from_records(records: Iterable[Mapping[str, Any]]) -> list[Order]:
    """Build :class:`Order` objects from JSON-style mappings.

    Each record provides ``order_id``, ``customer_id``, ``ordered_at`` and
    optionally ``total_amount``, ``currency`` and ``items`` (a list of
    mappings with ``product_id``, ``quantity`` and ``unit_price``). When
    ``total_amount`` is omitted it is derived from the line totals.

    Raises
    ------
    ValueError
        If a record lacks a required field.
    ParseError
        If ``ordered_at`` cannot be parsed.
    """
    orders: list[Order] = []
    for idx, record in enumerate(records):
        data = dict(record)
        _check_required(data, ORDER_REQUIRED_FIELDS, idx)

        raw_items = data.get("items") or []
        if not isinstance(raw_items, (list, tuple)):
            raise TypeError(
                "items must be a list if provided",
                {"record_index": idx, "value": raw_items},
            )
        items: list[OrderItem] = []
        for item_idx, raw_item in enumerate(raw_items):
            try:
                product_id = str(raw_item["product_id"])
            except KeyError as exc:
                raise ValueError(
                    "Order item missing product_id",
                    {"record_index": idx, "item_index": item_idx},
                ) from exc
            items.append(
                OrderItem(
                    product_id=product_id,
                    quantity=int(raw_item.get("quantity", 1)),
                    unit_price=_to_decimal(raw_item.get("unit_price", 0), "unit_price"),
                )
            )

        if data.get("total_amount") is not None:
            total_amount = _to_decimal(data["total_amount"], "total_amount")
        else:
            total_amount = sum((item.line_total for item in items), Decimal("0"))

        orders.append(
            Order(
                order_id=str(data["order_id"]),
                customer_id=str(data["customer_id"]),
                ordered_at=data["ordered_at"],
                total_amount=total_amount,
                currency=str(data.get("currency") or "JPY").upper(),
                items=tuple(items),
            )
        )
    return orders


def products_from_records(records: Iterable[Mapping[str, Any]]) -> list[Product]:
    """Build :class:`Product` objects from JSON-style mappings.

    ``category`` and ``cost`` are optional; empty strings and ``None`` are
    treated as absent. ``sku`` defaults to the product id.
    """
    products: list[Product] = []
    for idx, record in enumerate(records):
        data = dict(record)
        _check_required(data, PRODUCT_REQUIRED_FIELDS, idx)

        category = data.get("category")
        cost = data.get("cost")
        products.append(
            Product(
                product_id=str(data["product_id"]),
                sku=str(data.get("sku") or data["product_id"]),
                name=str(data["name"]),
                price=_to_decimal(data["price"], "price"),
                category=str(category) if category not in (None, "") else None,
                cost=_to_decimal(cost, "cost") if cost not in (None, "") else None,
            )
        )
    return products
