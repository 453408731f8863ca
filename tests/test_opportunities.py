"""
Unit tests for scanner/opportunities.py -- opportunity scanning and ranking.
"""

import pytest

from scanner.errors import DataUnavailable, OpportunityRejected
from scanner.models import Side
from scanner.opportunities import (
    MAX_OPPORTUNITIES,
    evaluate_side,
    liquidity_floor,
    prefilter_market,
    scan_opportunities,
)

from conftest import make_book, make_market, make_settings


class TestPrefilter:
    def test_passes_liquid_consistent_market(self, settings):
        prefilter_market(make_market(), settings)

    def test_rejects_low_liquidity(self, settings):
        with pytest.raises(OpportunityRejected) as exc:
            prefilter_market(make_market(liquidity=400), settings)
        assert exc.value.market_id == "m1"
        assert "liquidity" in exc.value.reason

    def test_rejects_wide_outcome_spread(self, settings):
        # 0.60 + 0.50 = 1.10 -> ~18% off a fair book
        with pytest.raises(OpportunityRejected):
            prefilter_market(make_market(yes=0.60, no=0.50), settings)

    def test_rejects_inactive(self, settings):
        with pytest.raises(OpportunityRejected):
            prefilter_market(make_market(active=False), settings)

    def test_settings_can_only_raise_liquidity_floor(self):
        assert liquidity_floor(make_settings(min_liquidity=100)) == 500.0
        assert liquidity_floor(make_settings(min_liquidity=3000)) == 3000.0


class TestEvaluateSide:
    @pytest.mark.asyncio
    async def test_good_side_becomes_opportunity(self, settings, market_data):
        market = market_data.add(make_market())
        opp = await evaluate_side(market, Side.YES, settings, market_data)
        assert opp.side == Side.YES
        assert opp.confidence == 85
        assert opp.optimal_price.recommended_price == pytest.approx(0.582)
        assert opp.depth.depth_score == 7

    @pytest.mark.asyncio
    async def test_missing_book_is_data_unavailable(self, settings, market_data):
        market = market_data.add(make_market(), with_books=False)
        with pytest.raises(DataUnavailable):
            await evaluate_side(market, Side.YES, settings, market_data)

    @pytest.mark.asyncio
    async def test_thin_book_rejected(self, settings, market_data):
        market = market_data.add(make_market())
        market_data.books[("m1", Side.YES)] = make_book("m1", Side.YES, 0.60, half_spread=0.05, levels=2, size=50)
        with pytest.raises(OpportunityRejected):
            await evaluate_side(market, Side.YES, settings, market_data)

    @pytest.mark.asyncio
    async def test_profit_floor_rejects_default_discount(self, market_data):
        # 3% below market is only ~3.1% profit against a 5% floor
        market = market_data.add(make_market())
        with pytest.raises(OpportunityRejected) as exc:
            await evaluate_side(market, Side.YES, make_settings(min_profit_percent=5.0), market_data)
        assert "profit" in exc.value.reason

    @pytest.mark.asyncio
    async def test_deeper_target_clears_profit_floor(self, market_data):
        market = market_data.add(make_market())
        settings = make_settings(min_profit_percent=5.0, target_discount=6.0)
        opp = await evaluate_side(market, Side.YES, settings, market_data)
        assert opp.optimal_price.implied_profit_percent >= 5.0


class TestScanOpportunities:
    @pytest.mark.asyncio
    async def test_both_sides_found(self, settings, market_data):
        market_data.add(make_market())
        opps = await scan_opportunities(settings, 0, market_data)
        assert {o.side for o in opps} == {Side.YES, Side.NO}

    @pytest.mark.asyncio
    async def test_short_circuits_at_concurrency_limit(self, settings, market_data):
        market_data.add(make_market())
        opps = await scan_opportunities(settings, settings.max_concurrent_orders, market_data)
        assert opps == []
        assert market_data.book_requests == []

    @pytest.mark.asyncio
    async def test_prefilter_skips_book_queries(self, settings, market_data):
        market_data.add(make_market(liquidity=100))
        assert await scan_opportunities(settings, 0, market_data) == []
        assert market_data.book_requests == []

    @pytest.mark.asyncio
    async def test_one_failing_market_does_not_abort_scan(self, settings, market_data):
        market_data.add(make_market("bad"))
        market_data.add(make_market("good"))
        market_data.failing.add("bad")
        opps = await scan_opportunities(settings, 0, market_data)
        assert {o.market.market_id for o in opps} == {"good"}

    @pytest.mark.asyncio
    async def test_listing_failure_returns_empty(self, settings, market_data):
        market_data.fail_listing = True
        assert await scan_opportunities(settings, 0, market_data) == []

    @pytest.mark.asyncio
    async def test_ranked_by_confidence_and_truncated(self, settings, market_data):
        # Neutral-confidence books listed first: score 3, spread ~2.3%
        for i in range(3):
            market = market_data.add(make_market(f"mid{i}"))
            for side, mid in ((Side.YES, 0.60), (Side.NO, 0.40)):
                market_data.books[(market.market_id, side)] = make_book(
                    market.market_id, side, mid, half_spread=0.007, levels=5, size=400,
                )
        for i in range(8):
            market_data.add(make_market(f"deep{i}"))
        opps = await scan_opportunities(settings, 0, market_data)
        assert len(opps) == MAX_OPPORTUNITIES
        confidences = [o.confidence for o in opps]
        assert confidences == sorted(confidences, reverse=True)
        assert all(o.confidence == 85 for o in opps)
