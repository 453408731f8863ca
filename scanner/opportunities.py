"""
Opportunity scanner. Walks the market universe, prices both outcome sides of
each candidate, and ranks the survivors by fill confidence.

Cheap market-level filters (liquidity, outcome spread) run before any order
book is fetched. One bad market never aborts the scan.
"""

from __future__ import annotations

import logging

from client.ports import MarketData
from config import EngineSettings
from scanner.depth import analyze_book
from scanner.errors import DataUnavailable, NetworkFailure, OpportunityRejected
from scanner.models import Market, Opportunity, Side
from scanner.pricing import compute_optimal_price

logger = logging.getLogger(__name__)

# Hard floors that apply whatever the settings say
MIN_LIQUIDITY_USD = 500.0
MAX_SPREAD_PERCENT = 10.0
MIN_DEPTH_SCORE = 3
MIN_CONFIDENCE = 40
MAX_OPPORTUNITIES = 10


def liquidity_floor(settings: EngineSettings) -> float:
    return max(MIN_LIQUIDITY_USD, settings.min_liquidity)


def spread_ceiling(settings: EngineSettings) -> float:
    return min(MAX_SPREAD_PERCENT, settings.max_spread)


def prefilter_market(market: Market, settings: EngineSettings) -> None:
    """Market-level gate. Raises OpportunityRejected before any book query."""
    if not market.active:
        raise OpportunityRejected(market.market_id, "inactive")
    floor = liquidity_floor(settings)
    if market.liquidity < floor:
        raise OpportunityRejected(
            market.market_id, f"liquidity ${market.liquidity:.0f} < ${floor:.0f}",
        )
    ceiling = spread_ceiling(settings)
    if market.outcome_spread_percent > ceiling:
        raise OpportunityRejected(
            market.market_id,
            f"outcome spread {market.outcome_spread_percent:.2f}% > {ceiling:.2f}%",
        )


async def evaluate_side(
    market: Market,
    side: Side,
    settings: EngineSettings,
    market_data: MarketData,
) -> Opportunity:
    """
    Price one outcome side of a market. Raises OpportunityRejected when a
    threshold fails, DataUnavailable when the book is missing or empty, and
    lets NetworkFailure propagate to the caller.
    """
    book = await market_data.get_order_book(market.market_id, side)
    if book is None:
        raise DataUnavailable(f"No order book for {market.market_id} {side.value}")

    depth = analyze_book(book)
    if depth.depth_score < MIN_DEPTH_SCORE:
        raise OpportunityRejected(market.market_id, f"{side.value} depth score {depth.depth_score}")
    floor = liquidity_floor(settings)
    if depth.liquidity < floor:
        raise OpportunityRejected(
            market.market_id, f"{side.value} book liquidity ${depth.liquidity:.0f} < ${floor:.0f}",
        )

    current_price = market.price_for(side)
    if current_price <= 0:
        raise DataUnavailable(f"No {side.value} price for {market.market_id}")

    optimal = compute_optimal_price(
        current_price,
        settings.target_discount,
        depth,
        settings.min_profit_percent,
    )
    if optimal.confidence < MIN_CONFIDENCE:
        raise OpportunityRejected(market.market_id, f"{side.value} confidence {optimal.confidence}")
    if optimal.implied_profit_percent < settings.min_profit_percent:
        raise OpportunityRejected(
            market.market_id,
            f"{side.value} profit {optimal.implied_profit_percent:.2f}% < {settings.min_profit_percent:.2f}%",
        )

    return Opportunity(market=market, optimal_price=optimal, depth=depth)


async def scan_market(
    market: Market,
    settings: EngineSettings,
    market_data: MarketData,
) -> list[Opportunity]:
    """Evaluate both sides of one market. Each side fails independently."""
    try:
        prefilter_market(market, settings)
    except OpportunityRejected as e:
        logger.debug("Market rejected: %s", e)
        return []

    found: list[Opportunity] = []
    for side in (Side.YES, Side.NO):
        try:
            found.append(await evaluate_side(market, side, settings, market_data))
        except OpportunityRejected as e:
            logger.debug("Candidate rejected: %s", e)
        except DataUnavailable as e:
            logger.debug("Skipping %s %s: %s", market.market_id, side.value, e)
        except NetworkFailure as e:
            logger.warning("Book fetch failed for %s %s: %s", market.market_id, side.value, e)
    return found


async def scan_opportunities(
    settings: EngineSettings,
    pending_count: int,
    market_data: MarketData,
) -> list[Opportunity]:
    """
    Scan the market universe for snipeable opportunities.

    Returns at most MAX_OPPORTUNITIES, best confidence first. Returns [] when
    the engine already holds max_concurrent_orders pending orders.
    """
    if pending_count >= settings.max_concurrent_orders:
        logger.debug(
            "Scan skipped: %d pending orders >= max %d",
            pending_count, settings.max_concurrent_orders,
        )
        return []

    try:
        markets = await market_data.list_markets()
    except NetworkFailure as e:
        logger.warning("Market listing failed: %s", e)
        return []

    opportunities: list[Opportunity] = []
    for market in markets:
        opportunities.extend(await scan_market(market, settings, market_data))

    opportunities.sort(key=lambda opp: opp.confidence, reverse=True)
    ranked = opportunities[:MAX_OPPORTUNITIES]
    logger.info(
        "Scan complete: %d markets, %d candidates, %d ranked",
        len(markets), len(opportunities), len(ranked),
    )
    return ranked
