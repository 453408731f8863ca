"""
Shared fakes for engine tests: a hand-advanced clock, in-memory market data
and a persistence double that records every call.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from config import EngineSettings
from scanner.errors import NetworkFailure
from scanner.models import Market, OrderBook, PriceLevel, Side

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        await asyncio.sleep(0)


def make_book(market_id: str, side: Side, mid: float = 0.60, half_spread: float = 0.003,
              levels: int = 10, size: float = 500.0) -> OrderBook:
    """Symmetric book around mid, one level per cent."""
    bids = tuple(PriceLevel(round(mid - half_spread - i * 0.01, 4), size) for i in range(levels))
    asks = tuple(PriceLevel(round(mid + half_spread + i * 0.01, 4), size) for i in range(levels))
    return OrderBook(market_id=market_id, side=side, bids=bids, asks=asks)


def make_market(market_id: str = "m1", yes: float = 0.60, no: float = 0.40,
                liquidity: float = 5000.0, **kwargs) -> Market:
    return Market(
        market_id=market_id,
        question=kwargs.pop("question", f"Will {market_id} happen?"),
        yes_price=yes,
        no_price=no,
        liquidity=liquidity,
        yes_token_id=f"{market_id}-yes",
        no_token_id=f"{market_id}-no",
        **kwargs,
    )


class FakeMarketData:
    """In-memory MarketData. Markets in `failing` raise NetworkFailure."""

    def __init__(self):
        self.markets: dict[str, Market] = {}
        self.books: dict[tuple[str, Side], OrderBook] = {}
        self.failing: set[str] = set()
        self.fail_listing = False
        self.book_requests: list[tuple[str, Side]] = []

    def add(self, market: Market, with_books: bool = True) -> Market:
        self.markets[market.market_id] = market
        if with_books:
            self.books[(market.market_id, Side.YES)] = make_book(market.market_id, Side.YES, market.yes_price)
            self.books[(market.market_id, Side.NO)] = make_book(market.market_id, Side.NO, market.no_price)
        return market

    def set_price(self, market_id: str, yes: float | None = None, no: float | None = None) -> None:
        market = self.markets[market_id]
        self.markets[market_id] = replace(
            market,
            yes_price=market.yes_price if yes is None else yes,
            no_price=market.no_price if no is None else no,
        )

    async def list_markets(self) -> list[Market]:
        if self.fail_listing:
            raise NetworkFailure("listing down")
        return list(self.markets.values())

    async def get_order_book(self, market_id: str, side: Side = Side.YES) -> OrderBook | None:
        self.book_requests.append((market_id, side))
        if market_id in self.failing:
            raise NetworkFailure(f"book {market_id} down")
        return self.books.get((market_id, side))

    async def get_market_by_id(self, market_id: str) -> Market | None:
        if market_id in self.failing:
            raise NetworkFailure(f"market {market_id} down")
        return self.markets.get(market_id)


class RecordingPersistence:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, tuple]] = []
        self.orders = {}
        self.positions = {}
        self.trades = []
        self.risk_state: dict | None = None

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if self.fail:
            raise RuntimeError(f"{name} failed")

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def upsert_order(self, order):
        self._record("upsert_order", order)
        self.orders[order.id] = order

    async def update_order_status(self, order_id, status, fill=None):
        self._record("update_order_status", order_id, status, fill)
        if order_id in self.orders:
            self.orders[order_id] = replace(self.orders[order_id], status=status)

    async def create_position(self, order, position):
        self._record("create_position", order, position)
        self.positions[position.id] = position

    async def update_position(self, position):
        self._record("update_position", position)
        self.positions[position.id] = position

    async def record_trade(self, trade):
        self._record("record_trade", trade)
        self.trades.append(trade)

    async def save_risk_state(self, state):
        self._record("save_risk_state", state)
        self.risk_state = state


def make_settings(**overrides) -> EngineSettings:
    """Defaults with a profit floor the default 3% discount can clear."""
    values = {"min_profit_percent": 2.0}
    values.update(overrides)
    return EngineSettings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def market_data():
    return FakeMarketData()


@pytest.fixture
def persistence():
    return RecordingPersistence()


@pytest.fixture
def settings():
    return make_settings()
