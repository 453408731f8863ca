"""
Polling fill detector. Infers that a resting discount order filled when the
market's outcome price trades down through its limit.

There is no fill feed: the engine polls on a fixed cadence and the 0.5%
tolerance absorbs quoting noise between polls.
"""

from __future__ import annotations

import logging
from datetime import datetime

from client.ports import MarketData
from scanner.errors import DataUnavailable, NetworkFailure
from scanner.models import FillResult, Order, OrderStatus

logger = logging.getLogger(__name__)

FILL_TOLERANCE = 1.005


def crosses_limit(market_price: float, limit_price: float) -> bool:
    """True when a buy limit at limit_price would have traded at market_price."""
    return market_price <= limit_price * FILL_TOLERANCE


async def check_order(order: Order, market_data: MarketData, now: datetime) -> FillResult:
    """
    Check one pending order against its market's live price.
    Raises NetworkFailure/DataUnavailable; detect_fills() isolates them.
    """
    market = await market_data.get_market_by_id(order.market_id)
    if market is None:
        raise DataUnavailable(f"Market {order.market_id} not found")

    market_price = market.price_for(order.side)
    if market_price <= 0:
        raise DataUnavailable(f"No {order.side.value} price for {order.market_id}")

    if not crosses_limit(market_price, order.limit_price):
        return FillResult(order_id=order.id, filled=False)

    return FillResult(
        order_id=order.id,
        filled=True,
        fill_price=market_price,
        fill_size=order.size,
        filled_at=now,
    )


async def detect_fills(
    orders: list[Order],
    market_data: MarketData,
    now: datetime,
) -> list[FillResult]:
    """
    Poll every pending order once. A failure on one order reports it as not
    filled this tick and moves on to the next.
    """
    results: list[FillResult] = []
    for order in orders:
        if order.status != OrderStatus.PENDING:
            continue
        try:
            results.append(await check_order(order, market_data, now))
        except NetworkFailure as e:
            logger.warning("Fill check failed for %s: %s", order.id, e)
            results.append(FillResult(order_id=order.id, filled=False))
        except DataUnavailable as e:
            logger.debug("Fill check skipped for %s: %s", order.id, e)
            results.append(FillResult(order_id=order.id, filled=False))
    return results
