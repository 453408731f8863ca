"""
Unit tests for executor/lifecycle.py -- snipe order lifecycle manager.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from executor.lifecycle import OrderLifecycle
from scanner.models import FillResult, Order, OrderStatus, Side

from conftest import T0, make_settings


def _make_order(order_id="o1", created_at=T0, resubmit_count=0, **kwargs):
    return Order(
        id=order_id,
        market_id=kwargs.pop("market_id", "m1"),
        market_title="Will m1 happen?",
        side=kwargs.pop("side", Side.YES),
        limit_price=0.582,
        current_price_at_creation=0.60,
        discount=3.0,
        size=kwargs.pop("size", 50.0),
        created_at=created_at,
        resubmit_count=resubmit_count,
        **kwargs,
    )


def _fill(order_id="o1", price=0.58):
    return FillResult(order_id=order_id, filled=True, fill_price=price, fill_size=50.0, filled_at=T0)


class TestAdd:
    def test_tracks_pending_order(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        assert lifecycle.pending_count == 1
        assert lifecycle.get("o1").status == OrderStatus.PENDING

    def test_duplicate_id_rejected(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        with pytest.raises(ValueError, match="Duplicate"):
            lifecycle.add(_make_order())

    def test_non_pending_order_rejected(self):
        with pytest.raises(ValueError):
            OrderLifecycle().add(_make_order(status=OrderStatus.FILLED))


class TestTransitions:
    def test_fill_promotes_pending(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        order = lifecycle.mark_filled(_fill())
        assert order.status == OrderStatus.FILLED
        assert order.fill_price == 0.58
        assert order.filled_at == T0
        assert lifecycle.pending_count == 0

    def test_unfilled_result_is_ignored(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        assert lifecycle.mark_filled(FillResult(order_id="o1", filled=False)) is None
        assert lifecycle.get("o1").is_pending

    def test_cancel_pending(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        assert lifecycle.cancel("o1").status == OrderStatus.CANCELLED

    def test_unknown_order_returns_none(self):
        assert OrderLifecycle().cancel("nope") is None

    @pytest.mark.parametrize("finish", ["fill", "cancel", "expire"])
    def test_terminal_orders_never_change(self, finish):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        {"fill": lambda: lifecycle.mark_filled(_fill()),
         "cancel": lambda: lifecycle.cancel("o1"),
         "expire": lambda: lifecycle.expire("o1")}[finish]()
        final = lifecycle.get("o1")

        assert lifecycle.mark_filled(_fill()) is None
        assert lifecycle.cancel("o1") is None
        assert lifecycle.expire("o1") is None
        assert lifecycle.get("o1") == final

    def test_illegal_expected_state_raises(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        with pytest.raises(ValueError):
            lifecycle.transition("o1", OrderStatus.PENDING, expected=OrderStatus.FILLED)


class TestExpiry:
    def test_expires_after_timeout(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        sweep = lifecycle.expire_stale(T0 + timedelta(minutes=61), make_settings(timeout_minutes=60))
        assert [o.id for o in sweep.expired] == ["o1"]
        assert lifecycle.get("o1").status == OrderStatus.EXPIRED

    def test_young_order_survives(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        sweep = lifecycle.expire_stale(T0 + timedelta(minutes=59), make_settings(timeout_minutes=60))
        assert sweep.expired == []
        assert lifecycle.get("o1").is_pending

    def test_exactly_at_timeout_expires(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        sweep = lifecycle.expire_stale(T0 + timedelta(minutes=60), make_settings(timeout_minutes=60))
        assert len(sweep.expired) == 1

    def test_fill_between_snapshot_and_expiry_wins(self):
        """A sweep working from a stale snapshot must not overwrite a fill."""
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        snapshot = lifecycle.stale_orders(T0 + timedelta(minutes=61), 60)
        assert [o.id for o in snapshot] == ["o1"]

        lifecycle.mark_filled(_fill())
        assert lifecycle.expire(snapshot[0].id) is None
        assert lifecycle.get("o1").status == OrderStatus.FILLED

    def test_resubmit_requested_with_incremented_count(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order(resubmit_count=1, size=30.0))
        sweep = lifecycle.expire_stale(T0 + timedelta(hours=2), make_settings(max_resubmits=2))
        assert len(sweep.resubmits) == 1
        request = sweep.resubmits[0]
        assert request.source_order_id == "o1"
        assert request.resubmit_count == 2
        assert request.size == 30.0
        assert request.side == Side.YES

    def test_resubmit_budget_exhausted(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order(resubmit_count=2))
        sweep = lifecycle.expire_stale(T0 + timedelta(hours=2), make_settings(max_resubmits=2))
        assert len(sweep.expired) == 1
        assert sweep.resubmits == []

    def test_resubmit_disabled(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        sweep = lifecycle.expire_stale(T0 + timedelta(hours=2), make_settings(resubmit_after_cancel=False))
        assert sweep.resubmits == []


class TestPrune:
    def test_drops_old_terminal_orders_only(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order("old"))
        lifecycle.add(_make_order("live"))
        lifecycle.cancel("old")
        removed = lifecycle.prune_terminal(T0 + timedelta(minutes=1))
        assert removed == 1
        assert lifecycle.get("old") is None
        assert lifecycle.get("live") is not None

    def test_restore_replaces_by_id(self):
        lifecycle = OrderLifecycle()
        lifecycle.add(_make_order())
        lifecycle.restore([replace(_make_order(), size=99.0)])
        assert lifecycle.get("o1").size == 99.0
        assert len(lifecycle.orders) == 1
