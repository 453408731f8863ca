"""
Order book depth analysis. Scores one market side on liquidity, spread
tightness and level count so the pricing step can widen or tighten its
discount.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from scanner.errors import DataUnavailable
from scanner.models import OrderBook, OrderBookDepth, PriceLevel, Side

logger = logging.getLogger(__name__)

# Levels per side that count toward volume and depth
TOP_LEVELS = 10
MAX_DEPTH_SCORE = 10


def sort_levels(
    raw_bids: Iterable[PriceLevel], raw_asks: Iterable[PriceLevel],
) -> tuple[tuple[PriceLevel, ...], tuple[PriceLevel, ...]]:
    """
    Bids: descending by price (best/highest first at index 0).
    Asks: ascending by price (best/lowest first at index 0).
    Venues do not guarantee sort order -- we must enforce it.
    """
    bids = tuple(sorted(raw_bids, key=lambda lvl: lvl.price, reverse=True))
    asks = tuple(sorted(raw_asks, key=lambda lvl: lvl.price))
    return bids, asks


def depth_score(liquidity: float, spread_percent: float, bid_depth: int, ask_depth: int) -> int:
    """
    Composite 0-10 book quality score.

    +3/+2/+1 for liquidity >= $5000/$2000/$1000
    +2/+1 for spread < 2% / < 5%
    +2/+1 when both sides show >= 8 / >= 5 levels
    """
    score = 0
    if liquidity >= 5000:
        score += 3
    elif liquidity >= 2000:
        score += 2
    elif liquidity >= 1000:
        score += 1

    if spread_percent < 2:
        score += 2
    elif spread_percent < 5:
        score += 1

    if bid_depth >= 8 and ask_depth >= 8:
        score += 2
    elif bid_depth >= 5 and ask_depth >= 5:
        score += 1

    return min(score, MAX_DEPTH_SCORE)


def analyze_depth(
    market_id: str,
    side: Side,
    bids: Iterable[PriceLevel],
    asks: Iterable[PriceLevel],
) -> OrderBookDepth:
    """
    Summarize a bid/ask ladder snapshot. Raises DataUnavailable if either
    side of the book is empty.
    """
    sorted_bids, sorted_asks = sort_levels(bids, asks)
    if not sorted_bids or not sorted_asks:
        raise DataUnavailable(
            f"Empty order book for {market_id} {side.value}: "
            f"{len(sorted_bids)} bids, {len(sorted_asks)} asks"
        )

    best_bid = sorted_bids[0].price
    best_ask = sorted_asks[0].price
    spread = best_ask - best_bid
    mid_price = (best_bid + best_ask) / 2.0
    if mid_price <= 0:
        raise DataUnavailable(f"Non-positive mid price for {market_id} {side.value}")
    spread_percent = spread / mid_price * 100.0

    top_bids = sorted_bids[:TOP_LEVELS]
    top_asks = sorted_asks[:TOP_LEVELS]
    total_bid_volume = sum(lvl.size for lvl in top_bids)
    total_ask_volume = sum(lvl.size for lvl in top_asks)
    liquidity = (total_bid_volume + total_ask_volume) * mid_price

    score = depth_score(liquidity, spread_percent, len(top_bids), len(top_asks))
    logger.debug(
        "Depth %s %s: bid=%.4f ask=%.4f spread=%.2f%% liq=$%.0f levels=%d/%d score=%d",
        market_id, side.value, best_bid, best_ask, spread_percent, liquidity,
        len(top_bids), len(top_asks), score,
    )

    return OrderBookDepth(
        market_id=market_id,
        side=side,
        best_bid=best_bid,
        best_ask=best_ask,
        spread=spread,
        spread_percent=spread_percent,
        bid_depth=len(top_bids),
        ask_depth=len(top_asks),
        total_bid_volume=total_bid_volume,
        total_ask_volume=total_ask_volume,
        liquidity=liquidity,
        depth_score=score,
    )


def analyze_book(book: OrderBook) -> OrderBookDepth:
    """analyze_depth() over a fetched OrderBook snapshot."""
    return analyze_depth(book.market_id, book.side, book.bids, book.asks)
