"""Command line entry points for the offer engine."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable

from customer_offer_engine.analyses import (
    AffinityConfig,
    NboConfig,
    calculate_affinity,
    next_best_offers,
)
from customer_offer_engine.foundation import (
    Order,
    Product,
    orders_from_records,
    parse_timestamp,
    products_from_records,
)
from customer_offer_engine.pandas import (
    calculate_rfm_by_customer,
    product_names,
    recommendations_to_dataframe,
    rfm_to_dataframe,
)

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB cap to avoid accidental OOM


def _load_records(path: Path) -> list[dict[str, Any]]:
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of records in {resolved}")
    return payload


def _load_orders(path: Path) -> list[Order]:
    logger.info(f"Loading orders from {path}")
    orders = orders_from_records(_load_records(path))
    logger.info(f"Loaded {len(orders)} orders")
    return orders


def _load_products(path: Path) -> list[Product]:
    logger.info(f"Loading products from {path}")
    products = products_from_records(_load_records(path))
    logger.info(f"Loaded {len(products)} products")
    return products


def _resolve_now(value: str | None) -> datetime:
    # The wall clock is only consulted here, at the outermost edge.
    if value is None:
        return datetime.now(timezone.utc)
    return parse_timestamp(value)


def _price_band(value: str) -> Decimal:
    try:
        band = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid price band: {value!r}") from exc
    if not band.is_finite() or not 0 <= band < 1:
        raise argparse.ArgumentTypeError(
            f"price band must be in [0, 1), got {value!r}"
        )
    return band


def _add_now_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--now",
        type=str,
        help="Reference instant (ISO-8601). Defaults to the current UTC time.",
    )


def _write_json(payload: Any, output: Path | None) -> None:
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        with output.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
        logger.info(f"Results written to {output}")
    else:  # stdout fallback enables piping in shell usage.
        json.dump(payload, fp=sys.stdout, indent=2, ensure_ascii=False)
        print()


def rfm_report_cli(argv: list[str] | None = None) -> int:
    """Calculate RFM snapshots and segments for every customer.

    Writes one CSV row per customer with columns customer_id, recency_days,
    frequency_90d, monetary_180d and segment.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 when the input holds no orders)
    """
    parser = argparse.ArgumentParser(
        description="Calculate RFM snapshots per customer from order data"
    )
    parser.add_argument("orders", type=Path, help="Path to JSON file with orders")
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path for the CSV report (defaults to stdout).",
    )
    _add_now_argument(parser)

    args = parser.parse_args(argv)
    now = _resolve_now(args.now)
    orders = _load_orders(args.orders)
    if not orders:
        logger.error("No orders found in input file")
        return 1

    rfm_df = rfm_to_dataframe(calculate_rfm_by_customer(orders, now))
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        rfm_df.to_csv(args.output, index=False)
        logger.info(f"RFM report exported to {args.output}")
    else:
        rfm_df.to_csv(sys.stdout, index=False)

    logger.info(
        f"Scored {len(rfm_df)} customers: "
        f"{rfm_df['segment'].value_counts().to_dict()}"
    )
    return 0


def affinity_cli(argv: list[str] | None = None) -> int:
    """Score product affinity for one customer and print it as JSON."""

    parser = argparse.ArgumentParser(
        description="Calculate product affinity scores for a customer"
    )
    parser.add_argument("orders", type=Path, help="Path to JSON file with orders")
    parser.add_argument("--customer", required=True, help="Customer identifier")
    parser.add_argument(
        "--products",
        type=Path,
        help="Optional product catalog JSON used to add product names.",
    )
    parser.add_argument(
        "--lookback-days",
        type=int,
        default=180,
        help="Only orders within this many days are scored (default: 180)",
    )
    parser.add_argument(
        "--proximity-window",
        type=int,
        default=30,
        help="Largest day gap to the latest order that earns a proximity bonus (default: 30)",
    )
    parser.add_argument("--output", type=Path, help="Optional JSON output path.")
    _add_now_argument(parser)

    args = parser.parse_args(argv)
    now = _resolve_now(args.now)
    orders = [o for o in _load_orders(args.orders) if o.customer_id == args.customer]
    products = _load_products(args.products) if args.products else []

    config = AffinityConfig(proximity_window_days=args.proximity_window)
    scores = calculate_affinity(orders, args.lookback_days, now, config=config)
    logger.info(f"Scored {len(scores)} products for customer {args.customer}")

    names = product_names(products)
    ranked = sorted(scores.items(), key=lambda entry: entry[1], reverse=True)
    payload = {
        "customer_id": args.customer,
        "now": now.isoformat(),
        "lookback_days": args.lookback_days,
        "scores": [
            {"product_id": product_id, "name": names.get(product_id), "score": score}
            for product_id, score in ranked
        ],
    }
    _write_json(payload, args.output)
    return 0


def next_best_offer_cli(argv: list[str] | None = None) -> int:
    """Recommend the next best offer for one or more customers.

    When no ``--customer`` is given, every customer found in the orders file
    is evaluated in order of first appearance. Customers without an eligible
    candidate are reported with a null recommendation (JSON) or omitted
    (CSV).

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, 1 when the input holds no orders)
    """
    parser = argparse.ArgumentParser(
        description="Recommend the next best offer from order and product data"
    )
    parser.add_argument("orders", type=Path, help="Path to JSON file with orders")
    parser.add_argument(
        "products", type=Path, help="Path to JSON file with the product catalog"
    )
    parser.add_argument(
        "--customer",
        dest="customers",
        action="append",
        help="Customer identifier (repeatable). Defaults to all customers.",
    )
    parser.add_argument(
        "--lookback-days",
        type=int,
        default=180,
        help="Affinity lookback window in days (default: 180)",
    )
    parser.add_argument(
        "--price-band",
        type=_price_band,
        default=Decimal("0.2"),
        help="Relative price band around the anchor product (default: 0.2 = ±20%%)",
    )
    parser.add_argument(
        "--format",
        choices=["json", "csv"],
        default="json",
        help="Output format (default: json)",
    )
    parser.add_argument("--output", type=Path, help="Optional output path.")
    _add_now_argument(parser)

    args = parser.parse_args(argv)
    now = _resolve_now(args.now)
    orders = _load_orders(args.orders)
    products = _load_products(args.products)
    if not orders:
        logger.error("No orders found in input file")
        return 1

    config = NboConfig(
        lookback_days=args.lookback_days, price_band=args.price_band
    )
    customer_ids = args.customers or [order.customer_id for order in orders]
    results = next_best_offers(customer_ids, orders, products, now, config=config)

    found = [rec for rec in results.values() if rec is not None]
    logger.info(f"Recommendations for {len(found)} of {len(results)} customers")

    if args.format == "csv":
        offers_df = recommendations_to_dataframe(found)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            offers_df.to_csv(args.output, index=False)
            logger.info(f"Recommendations exported to {args.output}")
        else:
            offers_df.to_csv(sys.stdout, index=False)
    else:
        payload = {
            customer_id: rec.as_dict() if rec is not None else None
            for customer_id, rec in results.items()
        }
        _write_json(payload, args.output)

    return 0


def _run(command: Callable[[], int]) -> None:
    # Logs go to stderr so CSV/JSON on stdout stays pipeable.
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=logging.INFO)
    raise SystemExit(command())


def main() -> None:
    _run(next_best_offer_cli)


def rfm_main() -> None:
    _run(rfm_report_cli)


def affinity_main() -> None:
    _run(affinity_cli)


if __name__ == "__main__":  # pragma: no cover
    main()
