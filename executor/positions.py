"""
Positions opened from filled snipe orders, and the price sources that mark
them to market.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import Protocol, runtime_checkable

from client.ports import MarketData
from scanner.models import ClosedTrade, Order, OrderStatus, Position
from scanner.pricing import clamp_price

logger = logging.getLogger(__name__)


def open_position(order: Order, fill_price: float, now: datetime, position_id: str) -> Position:
    """
    Open a position from a filled order. Entry is the actual fill price, not
    the order's limit price. P&L starts at zero.
    """
    if order.status != OrderStatus.FILLED:
        raise ValueError(f"Cannot open position from {order.status.value} order {order.id}")
    if fill_price <= 0:
        raise ValueError(f"Invalid fill price {fill_price} for order {order.id}")
    return Position(
        id=position_id,
        order_id=order.id,
        market_id=order.market_id,
        market_title=order.market_title,
        side=order.side,
        entry_price=fill_price,
        current_price=fill_price,
        size=order.size,
        opened_at=now,
    )


def revalue(position: Position, price: float) -> Position:
    """Mark a position to a new price."""
    pnl = (price - position.entry_price) * position.size
    pnl_percent = (price - position.entry_price) / position.entry_price * 100.0
    return replace(position, current_price=price, pnl=pnl, pnl_percent=pnl_percent)


def close_position(position: Position, exit_price: float, now: datetime) -> ClosedTrade:
    """Realize a position at exit_price."""
    profit = (exit_price - position.entry_price) * position.size
    profit_percent = (exit_price - position.entry_price) / position.entry_price * 100.0
    duration = int((now - position.opened_at).total_seconds() // 60)
    return ClosedTrade(
        position_id=position.id,
        market_id=position.market_id,
        market_title=position.market_title,
        side=position.side,
        entry_price=position.entry_price,
        exit_price=exit_price,
        size=position.size,
        profit=profit,
        profit_percent=profit_percent,
        duration_minutes=duration,
        opened_at=position.opened_at,
        closed_at=now,
    )


@runtime_checkable
class PriceSource(Protocol):
    """Where open positions get their current price from."""

    async def current_price(self, position: Position) -> float | None:
        """Latest price for the position's side, or None if unavailable."""
        ...


class MarketPriceSource:
    """Live outcome price from market data."""

    def __init__(self, market_data: MarketData) -> None:
        self._market_data = market_data

    async def current_price(self, position: Position) -> float | None:
        market = await self._market_data.get_market_by_id(position.market_id)
        if market is None:
            return None
        price = market.price_for(position.side)
        return price if price > 0 else None


class RandomWalkPriceSource:
    """
    Simulated feed for paper mode: each call moves the price by up to
    +/- max_step around the position's current price.
    """

    def __init__(self, max_step: float = 0.01, seed: int | None = None) -> None:
        self._max_step = max_step
        self._rng = random.Random(seed)

    async def current_price(self, position: Position) -> float | None:
        step = (self._rng.random() - 0.5) * 2.0 * self._max_step
        return clamp_price(position.current_price + step)


class ScriptedPriceSource:
    """Deterministic feed: replays a fixed price sequence per market, holding the last value."""

    def __init__(self, prices: dict[str, Iterable[float]] | None = None) -> None:
        self._queues: dict[str, list[float]] = {
            market_id: list(seq) for market_id, seq in (prices or {}).items()
        }

    def push(self, market_id: str, *prices: float) -> None:
        self._queues.setdefault(market_id, []).extend(prices)

    async def current_price(self, position: Position) -> float | None:
        queue = self._queues.get(position.market_id)
        if not queue:
            return None
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]
