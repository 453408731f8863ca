"""
Snipe engine. Owns the order book of resting discount orders, the positions
they turn into, and the four periodic loops that drive them:

- scan: find opportunities, auto-place the best one when enabled
- fill check: poll pending orders against live prices
- order management: expire timed-out orders and resubmit them
- price refresh: mark open positions to market and enforce the loss limit

Everything runs on one asyncio event loop. The loops interleave only at
await points; order status changes are compare-and-set in OrderLifecycle.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Awaitable, Callable

from client.ports import MarketData, NullPersistence, Persistence
from config import EngineSettings
from executor.clock import Clock, SystemClock
from executor.events import EventBus, EventKind
from executor.fills import detect_fills
from executor.ladder import build_ladder
from executor.lifecycle import OrderLifecycle, ResubmitRequest
from executor.positions import MarketPriceSource, PriceSource, close_position, open_position, revalue
from executor.risk import RiskGuard, RiskLimitBreach, RiskState
from monitor.ledger import TradeLedger
from monitor.metrics import SnipeMetrics, compute_metrics
from scanner.errors import DataUnavailable, NetworkFailure, OpportunityRejected
from scanner.models import ClosedTrade, Opportunity, Order, OrderStatus, Position
from scanner.opportunities import evaluate_side, prefilter_market, scan_opportunities

logger = logging.getLogger(__name__)

# How often an idle loop re-checks whether it has work
IDLE_POLL_SEC = 1.0
# Terminal orders are kept in memory this long for metrics
TERMINAL_RETENTION = timedelta(hours=24)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class SnipeEngine:
    def __init__(
        self,
        settings: EngineSettings,
        market_data: MarketData,
        persistence: Persistence | None = None,
        price_source: PriceSource | None = None,
        clock: Clock | None = None,
        events: EventBus | None = None,
        ledger: TradeLedger | None = None,
        id_factory: Callable[[str], str] = _new_id,
        risk_state: RiskState | None = None,
    ) -> None:
        self._settings = settings
        self._market_data = market_data
        self._persistence = persistence or NullPersistence()
        self._price_source = price_source or MarketPriceSource(market_data)
        self._clock = clock or SystemClock()
        self.events = events or EventBus()
        self._ledger = ledger
        self._new_id = id_factory

        self.lifecycle = OrderLifecycle()
        self.risk = RiskGuard(risk_state)
        self._positions: dict[str, Position] = {}
        self._trades: list[ClosedTrade] = []
        self.last_opportunities: list[Opportunity] = []

        self._scanning = False
        self._tasks: list[asyncio.Task] = []

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def positions(self) -> list[Position]:
        return list(self._positions.values())

    @property
    def trades(self) -> list[ClosedTrade]:
        return list(self._trades)

    @property
    def total_pnl(self) -> float:
        realized = sum(t.profit for t in self._trades)
        unrealized = sum(p.pnl for p in self._positions.values())
        return realized + unrealized

    def metrics(self) -> SnipeMetrics:
        return compute_metrics(self.lifecycle.orders, self.positions, self._trades)

    def restore(
        self,
        orders: list[Order],
        positions: list[Position],
        risk_state: RiskState | None = None,
        trades: list[ClosedTrade] | None = None,
    ) -> None:
        """
        Reload state recovered from storage after a restart. Closed trades are
        needed too: the saved day baseline includes their realized P&L.
        """
        self.lifecycle.restore(orders)
        for position in positions:
            self._positions[position.id] = position
        if trades:
            self._trades = list(trades)
        if risk_state is not None:
            self.risk = RiskGuard(risk_state)
        logger.info(
            "Engine restored: %d orders (%d pending), %d positions, %d trades",
            len(orders), self.lifecycle.pending_count, len(positions), len(self._trades),
        )

    # ── Control ───────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Resume scanning. Raises RiskLimitBreach while the daily limit is tripped."""
        self.risk.start()
        self.risk.roll_day(self._clock.now().date(), self.total_pnl)
        await self._save_risk()

    async def stop(self) -> None:
        """Stop scanning. Pending orders keep being checked and managed."""
        self.risk.stop()
        await self._save_risk()

    async def emergency_stop(self) -> None:
        self.risk.emergency_stop()
        self.events.emit(EventKind.EMERGENCY_STOP, self._clock.now(), total_pnl=self.total_pnl)
        await self._save_risk()

    async def reset_daily_limit(self) -> None:
        self.risk.reset_daily_limit(self.total_pnl)
        await self._save_risk()

    def update_settings(self, **changes) -> EngineSettings:
        """
        Apply and re-validate settings changes. Switching real trading mode on
        also switches auto-execution off.
        """
        if changes.get("real_trading_mode"):
            changes["auto_execute"] = False
        self._settings = self._settings.updated(**changes)
        logger.info("Settings updated: %s", ", ".join(sorted(changes)))
        return self._settings

    # ── Scan ──────────────────────────────────────────────────────────────

    async def scan_once(self) -> list[Opportunity]:
        """One scan cycle. Returns [] while stopped, limited, or already scanning."""
        if not self.risk.can_scan:
            return []
        if self._scanning:
            logger.debug("Scan already in progress")
            return []

        self._scanning = True
        try:
            opportunities = await scan_opportunities(
                self._settings, self.lifecycle.pending_count, self._market_data,
            )
        finally:
            self._scanning = False

        self.last_opportunities = opportunities
        now = self._clock.now()
        for opp in opportunities:
            self.events.emit(
                EventKind.OPPORTUNITY_FOUND,
                now,
                market_id=opp.market.market_id,
                side=opp.side.value,
                current_price=opp.optimal_price.current_price,
                recommended_price=opp.optimal_price.recommended_price,
                discount=opp.optimal_price.discount,
                confidence=opp.confidence,
            )

        # Re-checked after the await: a stop may have landed mid-scan
        if (
            opportunities
            and self._settings.auto_execute_enabled
            and self.risk.can_scan
            and self.lifecycle.pending_count + self._settings.ladder_tiers
            <= self._settings.max_concurrent_orders
        ):
            await self.place_opportunity(opportunities[0])
        return opportunities

    # ── Placement ─────────────────────────────────────────────────────────

    async def place_opportunity(
        self,
        opportunity: Opportunity,
        size: float | None = None,
        resubmit_count: int = 0,
    ) -> list[Order]:
        """
        Place resting orders for an opportunity: a ladder when laddering is on,
        otherwise one order at the recommended price. Also the manual
        confirmation path in real trading mode.

        Raises RiskLimitBreach while the daily limit is tripped.
        """
        if self.risk.state.is_daily_limit_reached:
            raise RiskLimitBreach("Daily loss limit reached. Orders are not accepted.")

        total = size if size is not None else self._settings.max_position_size
        optimal = opportunity.optimal_price
        market = opportunity.market
        now = self._clock.now()

        n_tiers = self._settings.ladder_tiers
        if n_tiers > 1:
            ladder = build_ladder(
                total, optimal, n_tiers, self._settings.ladder_price_range_percent,
            )
            legs = [(t.price, t.size, t.discount, i) for i, t in enumerate(ladder.tiers)]
        else:
            legs = [(optimal.recommended_price, total, optimal.discount, None)]

        placed: list[Order] = []
        for price, leg_size, discount, ladder_index in legs:
            order = Order(
                id=self._new_id("order"),
                market_id=market.market_id,
                market_title=market.question,
                side=optimal.side,
                limit_price=price,
                current_price_at_creation=optimal.current_price,
                discount=discount,
                size=leg_size,
                created_at=now,
                ladder_index=ladder_index,
                resubmit_count=resubmit_count,
                confidence=optimal.confidence,
                expected_fill_time=optimal.expected_fill_time,
                depth_score=opportunity.depth.depth_score,
            )
            self.lifecycle.add(order)
            await self._persist("upsert_order", self._persistence.upsert_order(order))
            self.events.emit(
                EventKind.ORDER_PLACED,
                now,
                order_id=order.id,
                market_id=order.market_id,
                side=order.side.value,
                limit_price=order.limit_price,
                size=order.size,
                ladder_index=ladder_index,
            )
            placed.append(order)
        return placed

    async def cancel_order(self, order_id: str) -> Order | None:
        """Manual cancel. Returns None if the order is no longer pending."""
        order = self.lifecycle.cancel(order_id)
        if order is None:
            return None
        await self._persist(
            "update_order_status",
            self._persistence.update_order_status(order.id, OrderStatus.CANCELLED),
        )
        self.events.emit(EventKind.ORDER_CANCELLED, self._clock.now(), order_id=order.id)
        return order

    # ── Fills ─────────────────────────────────────────────────────────────

    async def check_fills_once(self) -> list[Position]:
        """Poll pending orders once and open positions for any fills."""
        pending = self.lifecycle.pending()
        if not pending:
            return []

        now = self._clock.now()
        opened: list[Position] = []
        for fill in await detect_fills(pending, self._market_data, now):
            order = self.lifecycle.mark_filled(fill)
            if order is None:
                continue
            await self._persist(
                "update_order_status",
                self._persistence.update_order_status(order.id, OrderStatus.FILLED, fill),
            )
            self.events.emit(
                EventKind.ORDER_FILLED,
                now,
                order_id=order.id,
                market_id=order.market_id,
                fill_price=fill.fill_price,
                limit_price=order.limit_price,
            )

            fill_price = fill.fill_price or order.limit_price
            position = open_position(order, fill_price, now, self._new_id("pos"))
            self._positions[position.id] = position
            await self._persist(
                "create_position", self._persistence.create_position(order, position),
            )
            self.events.emit(
                EventKind.POSITION_OPENED,
                now,
                position_id=position.id,
                order_id=order.id,
                market_id=position.market_id,
                entry_price=position.entry_price,
                size=position.size,
            )
            opened.append(position)
        return opened

    # ── Order management ──────────────────────────────────────────────────

    async def manage_orders_once(self) -> list[Order]:
        """Expire timed-out orders, request resubmissions, prune old terminal orders."""
        now = self._clock.now()
        sweep = self.lifecycle.expire_stale(now, self._settings)

        for order in sweep.expired:
            await self._persist(
                "update_order_status",
                self._persistence.update_order_status(order.id, OrderStatus.EXPIRED),
            )
            self.events.emit(
                EventKind.ORDER_EXPIRED,
                now,
                order_id=order.id,
                market_id=order.market_id,
                age_minutes=(now - order.created_at).total_seconds() / 60.0,
            )

        for request in sweep.resubmits:
            self.events.emit(
                EventKind.ORDER_RESUBMIT_REQUESTED,
                now,
                source_order_id=request.source_order_id,
                market_id=request.market_id,
                side=request.side.value,
                size=request.size,
                resubmit_count=request.resubmit_count,
            )
            if self._settings.auto_execute_enabled and self.risk.can_scan:
                await self.resubmit(request)

        self.lifecycle.prune_terminal(now - TERMINAL_RETENTION)
        return sweep.expired

    async def resubmit(self, request: ResubmitRequest) -> list[Order]:
        """
        Re-price an expired order's market side at the current price and place
        it again. Returns [] when the market no longer qualifies.
        """
        try:
            market = await self._market_data.get_market_by_id(request.market_id)
            if market is None:
                raise DataUnavailable(f"Market {request.market_id} not found")
            prefilter_market(market, self._settings)
            opportunity = await evaluate_side(market, request.side, self._settings, self._market_data)
        except OpportunityRejected as e:
            logger.info("Resubmit of %s dropped: %s", request.source_order_id, e.reason)
            return []
        except DataUnavailable as e:
            logger.info("Resubmit of %s dropped: %s", request.source_order_id, e)
            return []
        except NetworkFailure as e:
            logger.warning("Resubmit of %s failed: %s", request.source_order_id, e)
            return []

        if not self.risk.can_scan:
            logger.info("Resubmit of %s dropped: engine stopped", request.source_order_id)
            return []

        logger.info(
            "Resubmitting %s (%d/%d) at %.4f",
            request.source_order_id, request.resubmit_count, self._settings.max_resubmits,
            opportunity.optimal_price.recommended_price,
        )
        return await self.place_opportunity(
            opportunity, size=request.size, resubmit_count=request.resubmit_count,
        )

    # ── Positions ─────────────────────────────────────────────────────────

    async def refresh_positions_once(self) -> None:
        """Mark every open position to its latest price, then check the loss limit."""
        if not self._positions:
            return
        for position_id, position in list(self._positions.items()):
            try:
                price = await self._price_source.current_price(position)
            except NetworkFailure as e:
                logger.warning("Price refresh failed for %s: %s", position_id, e)
                continue
            if price is None:
                continue
            # Closed while we were awaiting the price
            if position_id not in self._positions:
                continue
            updated = revalue(self._positions[position_id], price)
            self._positions[position_id] = updated
            await self._persist("update_position", self._persistence.update_position(updated))
        await self.evaluate_risk()

    async def close_position(self, position_id: str, exit_price: float) -> ClosedTrade:
        """Realize an open position. Raises KeyError for an unknown id."""
        position = self._positions.pop(position_id)
        now = self._clock.now()
        trade = close_position(position, exit_price, now)
        self._trades.append(trade)
        await self._persist("record_trade", self._persistence.record_trade(trade))
        if self._ledger is not None:
            await self._persist("ledger_append", asyncio.to_thread(self._ledger.append, trade))
        self.events.emit(
            EventKind.POSITION_CLOSED,
            now,
            position_id=position_id,
            market_id=trade.market_id,
            exit_price=exit_price,
            profit=trade.profit,
        )
        await self.evaluate_risk()
        return trade

    async def evaluate_risk(self) -> float:
        """Roll the trading day if needed and check the daily loss limit. Returns today's P&L."""
        total = self.total_pnl
        rolled = self.risk.roll_day(self._clock.now().date(), total)
        try:
            today = self.risk.evaluate(total, self._settings.daily_loss_limit)
        except RiskLimitBreach as e:
            logger.critical("%s. Scanning stopped.", e)
            today = self.risk.today_pnl(total)
            self.events.emit(
                EventKind.DAILY_LIMIT_REACHED,
                self._clock.now(),
                today_pnl=today,
                daily_loss_limit=self._settings.daily_loss_limit,
            )
            await self._save_risk()
            return today
        if rolled:
            await self._save_risk()
        return today

    # ── Loops ─────────────────────────────────────────────────────────────

    async def tick_all(self) -> None:
        """Run every loop body once, in order. Used by `run.py --once`."""
        await self.scan_once()
        await self.check_fills_once()
        await self.manage_orders_once()
        await self.refresh_positions_once()

    async def run(self) -> None:
        """Run the four loops until shutdown() cancels them."""
        self._tasks = [
            asyncio.create_task(
                self._loop("scan", self.scan_once, lambda: self._settings.scan_interval_seconds,
                           lambda: self.risk.can_scan),
                name="snipe-scan",
            ),
            asyncio.create_task(
                self._loop("fill-check", self.check_fills_once,
                           lambda: self._settings.fill_check_interval_sec,
                           lambda: self.lifecycle.pending_count > 0),
                name="snipe-fills",
            ),
            asyncio.create_task(
                self._loop("order-management", self.manage_orders_once,
                           lambda: self._settings.order_management_interval_sec,
                           lambda: self.risk.is_running),
                name="snipe-orders",
            ),
            asyncio.create_task(
                self._loop("price-refresh", self.refresh_positions_once,
                           lambda: self._settings.price_refresh_interval_sec,
                           lambda: bool(self._positions)),
                name="snipe-prices",
            ),
        ]
        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            logger.info("Engine loops cancelled")

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self._save_risk()
        logger.info("Engine shut down")

    async def _loop(
        self,
        name: str,
        body: Callable[[], Awaitable[object]],
        interval: Callable[[], float],
        active: Callable[[], bool],
    ) -> None:
        while True:
            if not active():
                await self._clock.sleep(IDLE_POLL_SEC)
                continue
            try:
                await body()
            except Exception as e:
                # Full traceback goes to the debug log file; the loop keeps going
                logger.error("%s tick failed: %s", name, e, exc_info=True)
            await self._clock.sleep(interval())

    # ── Persistence ───────────────────────────────────────────────────────

    async def _persist(self, what: str, call: Awaitable[None]) -> None:
        """Await a persistence call. A storage failure is logged, never fatal to the loop."""
        try:
            await call
        except Exception as e:
            logger.error("Persistence %s failed: %s", what, e, exc_info=True)

    async def _save_risk(self) -> None:
        await self._persist("save_risk_state", self._persistence.save_risk_state(self.risk.state.to_dict()))
