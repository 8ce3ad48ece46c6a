"""Tests for next-best-offer selection."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from customer_offer_engine.analyses.nbo import (
    NboConfig,
    NboRecommendation,
    next_best_offer,
    next_best_offers,
)
from customer_offer_engine.foundation.orders import (
    Order,
    OrderItem,
    ParseError,
    Product,
)

NOW = "2025-11-02T00:00:00Z"


@pytest.fixture
def products():
    return [
        Product("prod-laptop-a", "LAP-001", "Laptop Alpha", 100000, "Electronics", 70000),
        Product("prod-laptop-b", "LAP-002", "Laptop Beta", 110000, "Electronics", 75000),
        Product("prod-laptop-c", "LAP-003", "Laptop Charlie", 95000, "Electronics", 65000),
        Product("prod-mouse-a", "MOU-001", "Mouse Alpha", 3000, "Accessories", 1500),
        Product("prod-mouse-b", "MOU-002", "Mouse Beta", 3200, "Accessories", 1600),
        Product("prod-book-a", "BOO-001", "Book Alpha", 2000, "Books"),
    ]


def make_order(order_id, ordered_at, product_ids, customer_id="cust-1"):
    items = tuple(OrderItem(pid, 1, Decimal("1000")) for pid in product_ids)
    return Order(
        order_id=order_id,
        customer_id=customer_id,
        ordered_at=ordered_at,
        total_amount=Decimal(1000 * len(items)),
        currency="JPY",
        items=items,
    )


class TestNoRecommendation:
    """Ordinary outcomes that yield None."""

    def test_empty_history(self, products):
        assert next_best_offer("cust-1", [], products, NOW) is None

    def test_unknown_customer(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"], "cust-2")]
        assert next_best_offer("cust-1", orders, products, NOW) is None

    def test_latest_order_without_items(self, products):
        orders = [
            make_order("ord-1", "2025-10-01T00:00:00Z", ["prod-laptop-a"]),
            make_order("ord-2", "2025-10-31T00:00:00Z", []),
        ]
        assert next_best_offer("cust-1", orders, products, NOW) is None

    def test_base_product_missing_from_catalog(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-unknown"])]
        assert next_best_offer("cust-1", orders, products, NOW) is None

    def test_base_product_without_category(self, products):
        catalog = products + [Product("prod-gift", "GFT-001", "Gift Card", 5000)]
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-gift"])]
        assert next_best_offer("cust-1", orders, catalog, NOW) is None

    def test_no_candidate_in_category_and_band(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-book-a"])]
        assert next_best_offer("cust-1", orders, products, NOW) is None


class TestCandidateFilter:
    """Candidates share the anchor category and sit in the price band."""

    def test_same_category_within_band(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]
        result = next_best_offer("cust-1", orders, products, NOW)

        assert result is not None
        assert result.customer_id == "cust-1"
        assert result.product_id in {"prod-laptop-b", "prod-laptop-c"}
        assert "Electronics" in result.reason

    def test_band_bounds_inclusive(self):
        catalog = [
            Product("base", "B", "Base", 100000, "Electronics"),
            Product("hi", "H", "Zeta High", 120000, "Electronics"),
            Product("lo", "L", "Alpha Low", 80000, "Electronics"),
        ]
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["base"])]
        result = next_best_offer("cust-1", orders, catalog, NOW)
        # Equal score and equal distance; name decides
        assert result.product_id == "lo"

    def test_outside_band_or_category_never_selected(self):
        catalog = [
            Product("base", "B", "Base", 100000, "Electronics"),
            Product("too-high", "H", "High", 120001, "Electronics"),
            Product("too-low", "L", "Low", 79999, "Electronics"),
            Product("other-cat", "O", "Other", 100000, "Books"),
            Product("no-cat", "N", "Uncategorised", 100000),
        ]
        orders = [
            make_order("ord-1", "2025-10-20T00:00:00Z", ["too-high", "too-low", "other-cat"]),
            make_order("ord-2", "2025-10-31T00:00:00Z", ["base"]),
        ]
        assert next_best_offer("cust-1", orders, catalog, NOW) is None

    def test_latest_order_products_excluded(self, products):
        orders = [
            make_order(
                "ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-c", "prod-laptop-a"]
            )
        ]
        result = next_best_offer("cust-1", orders, products, NOW)
        assert result.product_id == "prod-laptop-b"


class TestBaseItem:
    """The last item of the latest order anchors the search."""

    def test_last_item_is_anchor(self, products):
        orders = [
            make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a", "prod-mouse-a"])
        ]
        result = next_best_offer("cust-1", orders, products, NOW)
        assert result.product_id == "prod-mouse-b"
        assert "Accessories" in result.reason

    def test_latest_order_chosen_by_timestamp_not_position(self, products):
        orders = [
            make_order("ord-2", "2025-10-31T00:00:00Z", ["prod-laptop-a"]),
            make_order("ord-1", "2025-09-01T00:00:00Z", ["prod-mouse-a"]),
        ]
        result = next_best_offer("cust-1", orders, products, NOW)
        assert result.product_id == "prod-laptop-c"


class TestRanking:
    """Affinity first, then price distance, then name."""

    def test_higher_affinity_wins_over_closer_price(self, products):
        orders = [
            make_order("ord-1", "2025-10-23T00:00:00Z", ["prod-laptop-b", "prod-mouse-a"]),
            make_order("ord-2", "2025-10-31T00:00:00Z", ["prod-laptop-a"]),
        ]
        result = next_best_offer("cust-1", orders, products, NOW)
        assert result.product_id == "prod-laptop-b"
        assert result.score == 1.0
        assert "Affinity score: 1.00" in result.reason

    def test_missing_affinity_counts_as_zero(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]
        result = next_best_offer("cust-1", orders, products, NOW)
        # Both candidates score 0; Charlie is 5000 away, Beta 10000
        assert result.product_id == "prod-laptop-c"
        assert result.score == 0.0

    def test_equal_score_and_distance_tie_broken_by_name(self, products):
        catalog = [p for p in products if p.product_id != "prod-laptop-c"] + [
            Product("prod-laptop-d", "LAP-004", "Laptop Delta", 110000, "Electronics", 75000)
        ]
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]

        result = next_best_offer("cust-1", orders, catalog, NOW)
        reversed_result = next_best_offer("cust-1", orders, list(reversed(catalog)), NOW)

        assert result.product_id == "prod-laptop-b"
        assert reversed_result.product_id == "prod-laptop-b"

    def test_name_tie_break_is_case_sensitive(self):
        catalog = [
            Product("base", "B", "Base", 1000, "Snacks"),
            Product("lower", "L", "apple crisps", 1100, "Snacks"),
            Product("upper", "U", "Banana chips", 900, "Snacks"),
        ]
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["base"])]
        result = next_best_offer("cust-1", orders, catalog, NOW)
        assert result.product_id == "upper"

    def test_affinity_uses_only_customer_orders(self, products):
        orders = [
            make_order("ord-9", "2025-10-30T00:00:00Z", ["prod-laptop-b", "prod-mouse-a"], "cust-2"),
            make_order("ord-10", "2025-11-01T00:00:00Z", ["prod-book-a"], "cust-2"),
            make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"]),
        ]
        result = next_best_offer("cust-1", orders, products, NOW)
        assert result.customer_id == "cust-1"
        assert result.product_id == "prod-laptop-c"
        assert result.score == 0.0

    def test_affinity_lookback_is_configurable(self, products):
        orders = [
            make_order("ord-1", "2025-10-20T00:00:00Z", ["prod-laptop-b", "prod-mouse-a"]),
            make_order("ord-2", "2025-10-31T00:00:00Z", ["prod-laptop-a"]),
        ]
        result = next_best_offer(
            "cust-1", orders, products, NOW, config=NboConfig(lookback_days=5)
        )
        assert result.product_id == "prod-laptop-c"


class TestRecommendationFields:
    def test_co_purchased_sibling_recommended(self, products):
        """Mouse A then Mouse A again 16 days later recommends Mouse B."""
        orders = [
            make_order("ord-1", "2025-10-15T00:00:00Z", ["prod-mouse-a", "prod-mouse-b"]),
            make_order("ord-2", "2025-10-31T00:00:00Z", ["prod-mouse-a"]),
        ]
        result = next_best_offer("cust-1", orders, products, NOW)

        assert result == NboRecommendation(
            customer_id="cust-1",
            product_id="prod-mouse-b",
            reason=(
                "Recent purchase category: Accessories / "
                "Price range: ±20% (2400-3600) / Affinity score: 1.00"
            ),
            score=1.0,
            price=Decimal("3200"),
            profit_est=Decimal("1600"),
        )

    def test_profit_from_cost(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]
        result = next_best_offer("cust-1", orders, products, NOW)
        assert result.price == Decimal("95000")
        assert result.profit_est == Decimal("30000")

    def test_profit_absent_without_cost(self, products):
        catalog = products + [Product("prod-book-b", "BOO-002", "Book Beta", 2100, "Books")]
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-book-a"])]
        result = next_best_offer("cust-1", orders, catalog, NOW)
        assert result.product_id == "prod-book-b"
        assert result.profit_est is None

    def test_reason_lists_category_band_and_score(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]
        result = next_best_offer("cust-1", orders, products, NOW)
        assert "Electronics" in result.reason
        assert "80000-120000" in result.reason
        assert "Affinity score: 0.00" in result.reason

    def test_custom_price_band_in_reason(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]
        config = NboConfig(price_band=Decimal("0.1"))
        result = next_best_offer("cust-1", orders, products, NOW, config=config)
        assert result.product_id == "prod-laptop-c"
        assert "±10% (90000-110000)" in result.reason

    def test_as_dict(self, products):
        catalog = products + [Product("prod-book-b", "BOO-002", "Book Beta", 2100, "Books")]
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-book-a"])]
        payload = next_best_offer("cust-1", orders, catalog, NOW).as_dict()
        assert payload["product_id"] == "prod-book-b"
        assert payload["price"] == "2100"
        assert payload["profit_est"] is None


class TestInputsAndConfig:
    def test_malformed_now_raises_parse_error(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]
        with pytest.raises(ParseError):
            next_best_offer("cust-1", orders, products, "next tuesday")

    def test_datetime_now_accepted(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]
        now = datetime(2025, 11, 2, tzinfo=timezone.utc)
        assert next_best_offer("cust-1", orders, products, now).product_id == "prod-laptop-c"

    def test_inputs_not_mutated(self, products):
        orders = [make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"])]
        catalog_snapshot = list(products)
        orders_snapshot = list(orders)
        next_best_offer("cust-1", orders, products, NOW)
        assert products == catalog_snapshot
        assert orders == orders_snapshot

    @pytest.mark.parametrize("band", [Decimal("-0.1"), Decimal("1"), Decimal("1.5")])
    def test_invalid_price_band(self, band):
        with pytest.raises(ValueError, match="Price band must be in"):
            NboConfig(price_band=band)

    def test_negative_lookback_rejected(self):
        with pytest.raises(ValueError, match="Lookback days cannot be negative"):
            NboConfig(lookback_days=-1)

    def test_config_is_immutable(self):
        config = NboConfig()
        assert replace(config, lookback_days=90).lookback_days == 90
        assert config.lookback_days == 180


class TestBatch:
    def test_next_best_offers(self, products):
        orders = [
            make_order("ord-1", "2025-10-31T00:00:00Z", ["prod-laptop-a"], "cust-1"),
            make_order("ord-2", "2025-10-30T00:00:00Z", ["prod-mouse-a"], "cust-2"),
        ]
        results = next_best_offers(
            ["cust-2", "cust-1", "cust-2", "cust-3"], orders, products, NOW
        )

        assert list(results) == ["cust-2", "cust-1", "cust-3"]
        assert results["cust-1"].product_id == "prod-laptop-c"
        assert results["cust-2"].product_id == "prod-mouse-b"
        assert results["cust-3"] is None

    def test_batch_matches_single_calls(self, products):
        orders = [
            make_order("ord-1", datetime(2025, 10, 31) - timedelta(days=3), ["prod-mouse-a", "prod-mouse-b"]),
            make_order("ord-2", datetime(2025, 10, 31), ["prod-mouse-a"]),
        ]
        batch = next_best_offers(["cust-1"], orders, products, NOW)
        assert batch["cust-1"] == next_best_offer("cust-1", orders, products, NOW)
