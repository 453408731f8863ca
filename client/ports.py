"""
Collaborator protocols. Thin interfaces the engine is written against so the
scanner/executor code never touches a concrete REST client or database.

Any market-data client or store that satisfies these protocols can plug into
the engine with zero changes to scanner/executor code.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from scanner.models import ClosedTrade, FillResult, Market, Order, OrderBook, OrderStatus, Position, Side


@runtime_checkable
class MarketData(Protocol):
    """
    Read-only market snapshots.

    Missing or malformed data comes back as None (or is omitted from lists).
    Transport failures raise scanner.errors.NetworkFailure.
    """

    async def list_markets(self) -> list[Market]:
        """Fetch the candidate market universe."""
        ...

    async def get_order_book(self, market_id: str, side: Side = Side.YES) -> OrderBook | None:
        """Fetch the order book for one outcome side of a market."""
        ...

    async def get_market_by_id(self, market_id: str) -> Market | None:
        """Fetch a fresh snapshot of one market, including outcome prices."""
        ...


@runtime_checkable
class Persistence(Protocol):
    """Write side for orders, positions and closed trades. Idempotent by id."""

    async def upsert_order(self, order: Order) -> None:
        ...

    async def update_order_status(
        self, order_id: str, status: OrderStatus, fill: FillResult | None = None,
    ) -> None:
        ...

    async def create_position(self, order: Order, position: Position) -> None:
        ...

    async def update_position(self, position: Position) -> None:
        ...

    async def record_trade(self, trade: ClosedTrade) -> None:
        ...

    async def save_risk_state(self, state: dict) -> None:
        ...


class NullPersistence:
    """Persistence that stores nothing. Used for dry runs."""

    async def upsert_order(self, order: Order) -> None:
        return None

    async def update_order_status(
        self, order_id: str, status: OrderStatus, fill: FillResult | None = None,
    ) -> None:
        return None

    async def create_position(self, order: Order, position: Position) -> None:
        return None

    async def update_position(self, position: Position) -> None:
        return None

    async def record_trade(self, trade: ClosedTrade) -> None:
        return None

    async def save_risk_state(self, state: dict) -> None:
        return None
