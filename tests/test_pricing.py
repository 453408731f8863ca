"""
Unit tests for scanner/pricing.py and scanner/confidence.py -- snipe pricing.
"""

import pytest

from scanner.confidence import fill_confidence
from scanner.models import OrderBookDepth, Side
from scanner.pricing import (
    clamp_price,
    compute_optimal_price,
    discount_bounds,
    expected_fill_minutes,
)


def _make_depth(score=8, spread_percent=1.5, liquidity=3000.0, side=Side.YES):
    return OrderBookDepth(
        market_id="m1",
        side=side,
        best_bid=0.59,
        best_ask=0.61,
        spread=0.02,
        spread_percent=spread_percent,
        bid_depth=10,
        ask_depth=10,
        total_bid_volume=2500.0,
        total_ask_volume=2500.0,
        liquidity=liquidity,
        depth_score=score,
    )


class TestComputeOptimalPrice:
    def test_reference_case(self):
        optimal = compute_optimal_price(0.60, 3.0, _make_depth())
        assert optimal.recommended_price == pytest.approx(0.582)
        assert optimal.discount == pytest.approx(3.0)
        assert optimal.confidence == 85
        # 30 min baseline, x0.7 for a deep book
        assert optimal.expected_fill_time == pytest.approx(21.0)

    def test_penalties_stack(self):
        depth = _make_depth(score=3, spread_percent=6.0, liquidity=800.0)
        optimal = compute_optimal_price(0.50, 3.0, depth)
        # 3 + 1 (spread) + 1.5 (depth) + 1 (liquidity)
        assert optimal.discount == pytest.approx(6.5)
        assert optimal.recommended_price == pytest.approx(0.50 * 0.935)

    def test_high_band_deepens_discount(self):
        optimal = compute_optimal_price(0.80, 3.0, _make_depth())
        assert optimal.discount == pytest.approx(3.5)

    def test_low_band_shallows_discount(self):
        optimal = compute_optimal_price(0.20, 3.0, _make_depth())
        assert optimal.discount == pytest.approx(2.5)

    def test_discount_capped_at_fifteen(self):
        depth = _make_depth(score=1, spread_percent=20.0, liquidity=100.0)
        optimal = compute_optimal_price(0.80, 15.0, depth)
        assert optimal.discount == pytest.approx(15.0)

    @pytest.mark.parametrize("price", [0.001, 0.01, 0.2, 0.5, 0.99, 1.0, 1.5])
    def test_recommended_price_always_tradable(self, price):
        optimal = compute_optimal_price(price, 3.0, _make_depth())
        assert 0.01 <= optimal.recommended_price <= 0.99

    def test_reasoning_names_inputs(self):
        optimal = compute_optimal_price(0.60, 3.0, _make_depth(), min_profit_percent=5.0)
        assert "Depth Score: 8/10" in optimal.reasoning
        assert "Spread: 1.50%" in optimal.reasoning
        assert "Liquidity: $3000" in optimal.reasoning
        assert "min profit 5.0%" in optimal.reasoning

    def test_implied_profit(self):
        optimal = compute_optimal_price(0.60, 3.0, _make_depth())
        assert optimal.implied_profit_percent == pytest.approx((0.60 - 0.582) / 0.582 * 100)


class TestDiscountBounds:
    def test_window_around_base(self):
        assert discount_bounds(3.0) == (2.0, 6.0)

    def test_floor_at_one(self):
        assert discount_bounds(1.5) == (1.0, 4.5)

    def test_cap_wins_when_crossing(self):
        lower, upper = discount_bounds(17.0)
        assert upper == 15.0
        assert lower == 15.0


class TestFillTime:
    def test_shallow_discount_fills_fast(self):
        assert expected_fill_minutes(2.0, 5) == 15.0

    def test_deep_discount_fills_slow(self):
        assert expected_fill_minutes(7.0, 5) == 60.0

    def test_thin_book_slows_fill(self):
        assert expected_fill_minutes(4.0, 3) == pytest.approx(45.0)


class TestConfidence:
    def test_tiers(self):
        assert fill_confidence(_make_depth(score=7, spread_percent=2.9, liquidity=2000)) == 85
        assert fill_confidence(_make_depth(score=5, spread_percent=4.9, liquidity=1000)) == 70
        assert fill_confidence(_make_depth(score=2, spread_percent=1.0, liquidity=9000)) == 30
        assert fill_confidence(_make_depth(score=4, spread_percent=9.0, liquidity=9000)) == 30
        assert fill_confidence(_make_depth(score=4, spread_percent=6.0, liquidity=800)) == 50


def test_clamp_price():
    assert clamp_price(0.0) == 0.01
    assert clamp_price(1.2) == 0.99
    assert clamp_price(0.5) == 0.5
