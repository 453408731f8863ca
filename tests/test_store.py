"""
Unit tests for state/store.py -- SQLite persistence and crash recovery.
"""

from dataclasses import replace
from datetime import date, timedelta

import pytest

from executor.risk import RiskState
from scanner.models import ClosedTrade, FillResult, Order, OrderStatus, Position, Side
from state.store import SqliteStore

from conftest import T0


def _make_order(order_id="o1", ladder_index=0):
    return Order(
        id=order_id,
        market_id="m1",
        market_title="Will m1 happen?",
        side=Side.NO,
        limit_price=0.388,
        current_price_at_creation=0.40,
        discount=3.0,
        size=50.0,
        created_at=T0,
        ladder_index=ladder_index,
        confidence=85,
        expected_fill_time=21.0,
        depth_score=7,
    )


def _make_position(position_id="p1"):
    return Position(
        id=position_id,
        order_id="o1",
        market_id="m1",
        market_title="Will m1 happen?",
        side=Side.NO,
        entry_price=0.39,
        current_price=0.39,
        size=50.0,
        opened_at=T0,
    )


@pytest.fixture
def store(tmp_path):
    s = SqliteStore(tmp_path / "state.db")
    yield s
    s.close()


class TestOrders:
    @pytest.mark.asyncio
    async def test_upsert_round_trip(self, store):
        order = _make_order()
        await store.upsert_order(order)
        assert store.list_orders() == [order]

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store):
        await store.upsert_order(_make_order())
        await store.upsert_order(_make_order())
        assert len(store.list_orders()) == 1

    @pytest.mark.asyncio
    async def test_fill_status_records_price(self, store):
        await store.upsert_order(_make_order())
        fill = FillResult(order_id="o1", filled=True, fill_price=0.385, fill_size=50.0,
                          filled_at=T0 + timedelta(minutes=5))
        await store.update_order_status("o1", OrderStatus.FILLED, fill)
        [order] = store.list_orders()
        assert order.status == OrderStatus.FILLED
        assert order.fill_price == 0.385
        assert order.filled_at == T0 + timedelta(minutes=5)

    def test_status_for_unknown_order(self, store):
        assert store.set_order_status("missing", OrderStatus.EXPIRED) is False


class TestRecovery:
    @pytest.mark.asyncio
    async def test_load_open_state(self, store):
        await store.upsert_order(_make_order("live"))
        await store.upsert_order(_make_order("done"))
        await store.update_order_status("done", OrderStatus.EXPIRED)
        await store.create_position(_make_order("done"), _make_position("p1"))
        await store.create_position(_make_order("done"), _make_position("p2"))
        await store.save_risk_state(
            RiskState(is_running=True, is_daily_limit_reached=True,
                      today_start_pnl=-10.0, trading_day=date(2026, 3, 2)).to_dict()
        )
        trade = ClosedTrade(
            position_id="p2", market_id="m1", market_title="Will m1 happen?", side=Side.NO,
            entry_price=0.39, exit_price=0.41, size=50.0, profit=1.0, profit_percent=5.1,
            duration_minutes=12, opened_at=T0, closed_at=T0 + timedelta(minutes=12),
        )
        await store.record_trade(trade)

        orders, positions, risk, trades = store.load_open_state()
        assert [o.id for o in orders] == ["live"]
        assert [p.id for p in positions] == ["p1"]
        assert risk.is_daily_limit_reached is True
        assert risk.is_running is False
        assert trades == [trade]

    def test_no_risk_state_saved(self, store):
        assert store.load_open_state() == ([], [], None, [])

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        path = tmp_path / "state.db"
        first = SqliteStore(path)
        await first.upsert_order(_make_order())
        first.close()

        second = SqliteStore(path)
        assert [o.id for o in second.list_orders()] == ["o1"]
        assert second.stats["orders"] == {"pending": 1}
        second.close()

    @pytest.mark.asyncio
    async def test_update_position(self, store):
        await store.create_position(_make_order(), _make_position())
        await store.update_position(replace(_make_position(), current_price=0.42, pnl=1.5))
        [position] = store.list_open_positions()
        assert position.current_price == 0.42
        assert position.pnl == 1.5

    @pytest.mark.asyncio
    async def test_late_refresh_does_not_reopen_closed_position(self, store):
        await store.create_position(_make_order(), _make_position())
        trade = ClosedTrade(
            position_id="p1", market_id="m1", market_title="Will m1 happen?", side=Side.NO,
            entry_price=0.39, exit_price=0.41, size=50.0, profit=1.0, profit_percent=5.1,
            duration_minutes=12, opened_at=T0, closed_at=T0 + timedelta(minutes=12),
        )
        await store.record_trade(trade)
        await store.update_position(replace(_make_position(), current_price=0.30, pnl=-4.5))
        assert store.list_open_positions() == []
        assert store.revalue_position(_make_position()) is False
