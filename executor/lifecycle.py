"""
Snipe order lifecycle manager. Holds every order the engine placed and is the
only place their status changes.

Manages:
- Recording newly placed orders (always PENDING)
- Promoting fills reported by the fill detector
- Expiring orders older than the timeout, with optional resubmission
- Manual cancellation

The fill check and the timeout sweep run as separate periodic tasks over the
same orders. Every status change is a compare-and-set against the order's
live status, so a sweep working from a stale snapshot can never overwrite a
fill that landed in between.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from config import EngineSettings
from executor.order_state import is_terminal_state, transition_to
from scanner.models import FillResult, Order, OrderStatus, Side

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResubmitRequest:
    """Ask for a fresh scan-and-place of an expired order's market side at current price."""
    source_order_id: str
    market_id: str
    market_title: str
    side: Side
    size: float
    resubmit_count: int  # carried by the replacement order


@dataclass
class ExpirySweep:
    expired: list[Order] = field(default_factory=list)
    resubmits: list[ResubmitRequest] = field(default_factory=list)


class OrderLifecycle:
    """
    Track snipe orders from placement to a terminal state.

    Single-writer: meant to be driven from one asyncio event loop.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}

    def add(self, order: Order) -> Order:
        """Record a newly placed order. Orders always enter as PENDING."""
        if order.id in self._orders:
            raise ValueError(f"Duplicate order id: {order.id}")
        if order.status != OrderStatus.PENDING:
            raise ValueError(f"New order {order.id} must be pending, got {order.status.value}")
        self._orders[order.id] = order
        logger.info(
            "Order placed: %s %s %s @ %.4f x %.2f (%.1f%% below %.4f)",
            order.id, order.market_id, order.side.value, order.limit_price,
            order.size, order.discount, order.current_price_at_creation,
        )
        return order

    def restore(self, orders: list[Order]) -> None:
        """Load orders recovered from storage, replacing any with the same id."""
        for order in orders:
            self._orders[order.id] = order
        logger.info("Restored %d orders", len(orders))

    def get(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    @property
    def orders(self) -> list[Order]:
        return list(self._orders.values())

    def pending(self) -> list[Order]:
        return [o for o in self._orders.values() if o.status == OrderStatus.PENDING]

    @property
    def pending_count(self) -> int:
        return sum(1 for o in self._orders.values() if o.status == OrderStatus.PENDING)

    def transition(
        self,
        order_id: str,
        to_status: OrderStatus,
        expected: OrderStatus = OrderStatus.PENDING,
        **changes,
    ) -> Order | None:
        """
        Compare-and-set status change. Applies only if the order's live status
        is still `expected`; otherwise returns None and leaves it untouched.

        Raises ValueError if expected -> to_status is not a legal transition.
        """
        transition_to(expected, to_status)

        current = self._orders.get(order_id)
        if current is None:
            logger.warning("Transition to %s for unknown order %s", to_status.value, order_id)
            return None
        if current.status != expected:
            logger.debug(
                "Skipping %s -> %s for %s: already %s",
                expected.value, to_status.value, order_id, current.status.value,
            )
            return None

        updated = replace(current, status=to_status, **changes)
        self._orders[order_id] = updated
        return updated

    def mark_filled(self, fill: FillResult) -> Order | None:
        """Promote a pending order to FILLED. Returns None if it is no longer pending."""
        if not fill.filled:
            return None
        order = self.transition(
            fill.order_id,
            OrderStatus.FILLED,
            filled_at=fill.filled_at,
            fill_price=fill.fill_price,
        )
        if order is not None:
            logger.info(
                "Order filled: %s @ %.4f (limit %.4f)",
                order.id, fill.fill_price or order.limit_price, order.limit_price,
            )
        return order

    def cancel(self, order_id: str) -> Order | None:
        """Manual cancel. A filled/expired order is left as is and None returned."""
        order = self.transition(order_id, OrderStatus.CANCELLED)
        if order is not None:
            logger.info("Order cancelled: %s", order_id)
        return order

    def expire(self, order_id: str) -> Order | None:
        """Timeout expiry. Skipped silently if the order filled in the meantime."""
        order = self.transition(order_id, OrderStatus.EXPIRED)
        if order is not None:
            logger.info("Order expired: %s", order_id)
        return order

    def stale_orders(self, now: datetime, timeout_minutes: float) -> list[Order]:
        """Snapshot of pending orders whose age has reached the timeout."""
        timeout = timedelta(minutes=timeout_minutes)
        return [o for o in self.pending() if now - o.created_at >= timeout]

    def resubmit_request(self, order: Order, settings: EngineSettings) -> ResubmitRequest | None:
        """Resubmission for an expired order, if the retry policy allows one."""
        if not settings.resubmit_after_cancel:
            return None
        if order.resubmit_count >= settings.max_resubmits:
            logger.debug(
                "No resubmit for %s: %d/%d resubmits used",
                order.id, order.resubmit_count, settings.max_resubmits,
            )
            return None
        return ResubmitRequest(
            source_order_id=order.id,
            market_id=order.market_id,
            market_title=order.market_title,
            side=order.side,
            size=order.size,
            resubmit_count=order.resubmit_count + 1,
        )

    def expire_stale(self, now: datetime, settings: EngineSettings) -> ExpirySweep:
        """Expire every timed-out pending order and collect resubmission requests."""
        sweep = ExpirySweep()
        for candidate in self.stale_orders(now, settings.timeout_minutes):
            order = self.expire(candidate.id)
            if order is None:
                continue
            sweep.expired.append(order)
            request = self.resubmit_request(order, settings)
            if request is not None:
                sweep.resubmits.append(request)
        return sweep

    def prune_terminal(self, older_than: datetime) -> int:
        """Drop terminal orders created before `older_than`. Returns count removed."""
        to_remove = [
            order_id
            for order_id, order in self._orders.items()
            if is_terminal_state(order.status) and order.created_at < older_than
        ]
        for order_id in to_remove:
            del self._orders[order_id]
        if to_remove:
            logger.debug("Pruned %d terminal orders from tracking", len(to_remove))
        return len(to_remove)
