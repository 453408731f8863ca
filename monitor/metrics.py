"""
Snipe performance metrics: fill rate, discount captured, fill latency and P&L.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from scanner.models import ClosedTrade, Order, OrderStatus, Position


@dataclass(frozen=True)
class SnipeMetrics:
    total_orders: int = 0
    pending_orders: int = 0
    filled_orders: int = 0
    cancelled_orders: int = 0
    expired_orders: int = 0
    avg_discount: float = 0.0
    fill_rate: float = 0.0  # percent of all orders
    avg_fill_time_min: float = 0.0
    open_positions: int = 0
    closed_trades: int = 0
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0

    @property
    def total_pnl(self) -> float:
        return self.realized_pnl + self.unrealized_pnl

    def summary(self) -> dict:
        """Rounded dict for logs and status output."""
        data = {k: round(v, 2) if isinstance(v, float) else v for k, v in asdict(self).items()}
        data["total_pnl"] = round(self.total_pnl, 2)
        return data


def compute_metrics(
    orders: list[Order],
    positions: list[Position],
    trades: list[ClosedTrade],
) -> SnipeMetrics:
    counts = {status: 0 for status in OrderStatus}
    for order in orders:
        counts[order.status] += 1

    total = len(orders)
    avg_discount = sum(o.discount for o in orders) / total if total else 0.0
    fill_rate = counts[OrderStatus.FILLED] / total * 100.0 if total else 0.0

    fill_minutes = [
        (o.filled_at - o.created_at).total_seconds() / 60.0
        for o in orders
        if o.status == OrderStatus.FILLED and o.filled_at is not None
    ]
    avg_fill_time = sum(fill_minutes) / len(fill_minutes) if fill_minutes else 0.0

    return SnipeMetrics(
        total_orders=total,
        pending_orders=counts[OrderStatus.PENDING],
        filled_orders=counts[OrderStatus.FILLED],
        cancelled_orders=counts[OrderStatus.CANCELLED],
        expired_orders=counts[OrderStatus.EXPIRED],
        avg_discount=avg_discount,
        fill_rate=fill_rate,
        avg_fill_time_min=avg_fill_time,
        open_positions=len(positions),
        closed_trades=len(trades),
        unrealized_pnl=sum(p.pnl for p in positions),
        realized_pnl=sum(t.profit for t in trades),
    )
