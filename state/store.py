"""
SQLite store for snipe orders, positions and closed trades, plus the risk
state needed to come back up after a crash.

Implements the Persistence port. Every write is idempotent by id and atomic
(single SQLite transaction). Blocking sqlite calls run in a worker thread so
the engine's event loop never stalls on disk.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from executor.risk import RiskState
from scanner.models import ClosedTrade, FillResult, Order, OrderStatus, Position, Side

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS snipe_orders (
    id TEXT PRIMARY KEY,
    market_id TEXT NOT NULL,
    market_title TEXT NOT NULL,
    side TEXT NOT NULL,
    limit_price REAL NOT NULL,
    current_price REAL NOT NULL,
    discount REAL NOT NULL,
    size REAL NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    filled_at TEXT,
    fill_price REAL,
    ladder_index INTEGER,
    resubmit_count INTEGER DEFAULT 0,
    confidence INTEGER DEFAULT 0,
    expected_fill_time REAL DEFAULT 0,
    depth_score INTEGER DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_snipe_orders_status ON snipe_orders(status);

CREATE TABLE IF NOT EXISTS snipe_positions (
    id TEXT PRIMARY KEY,
    order_id TEXT NOT NULL,
    market_id TEXT NOT NULL,
    market_title TEXT NOT NULL,
    side TEXT NOT NULL,
    entry_price REAL NOT NULL,
    current_price REAL NOT NULL,
    size REAL NOT NULL,
    pnl REAL DEFAULT 0,
    pnl_percent REAL DEFAULT 0,
    opened_at TEXT NOT NULL,
    closed INTEGER DEFAULT 0
);

CREATE TABLE IF NOT EXISTS snipe_trades (
    position_id TEXT PRIMARY KEY,
    market_id TEXT NOT NULL,
    market_title TEXT NOT NULL,
    side TEXT NOT NULL,
    entry_price REAL NOT NULL,
    exit_price REAL NOT NULL,
    size REAL NOT NULL,
    profit REAL NOT NULL,
    profit_percent REAL NOT NULL,
    duration_minutes INTEGER NOT NULL,
    opened_at TEXT NOT NULL,
    closed_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS engine_state (
    key TEXT PRIMARY KEY,
    data_json TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""

DEFAULT_DB_PATH = Path("snipe_state.db")
_RISK_KEY = "risk"


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _order_from_row(row: sqlite3.Row) -> Order:
    return Order(
        id=row["id"],
        market_id=row["market_id"],
        market_title=row["market_title"],
        side=Side(row["side"]),
        limit_price=row["limit_price"],
        current_price_at_creation=row["current_price"],
        discount=row["discount"],
        size=row["size"],
        created_at=_dt(row["created_at"]),
        status=OrderStatus(row["status"]),
        filled_at=_dt(row["filled_at"]),
        fill_price=row["fill_price"],
        ladder_index=row["ladder_index"],
        resubmit_count=row["resubmit_count"],
        confidence=row["confidence"],
        expected_fill_time=row["expected_fill_time"],
        depth_score=row["depth_score"],
    )


def _position_from_row(row: sqlite3.Row) -> Position:
    return Position(
        id=row["id"],
        order_id=row["order_id"],
        market_id=row["market_id"],
        market_title=row["market_title"],
        side=Side(row["side"]),
        entry_price=row["entry_price"],
        current_price=row["current_price"],
        size=row["size"],
        opened_at=_dt(row["opened_at"]),
        pnl=row["pnl"],
        pnl_percent=row["pnl_percent"],
    )


def _trade_from_row(row: sqlite3.Row) -> ClosedTrade:
    return ClosedTrade(
        position_id=row["position_id"],
        market_id=row["market_id"],
        market_title=row["market_title"],
        side=Side(row["side"]),
        entry_price=row["entry_price"],
        exit_price=row["exit_price"],
        size=row["size"],
        profit=row["profit"],
        profit_percent=row["profit_percent"],
        duration_minutes=row["duration_minutes"],
        opened_at=_dt(row["opened_at"]),
        closed_at=_dt(row["closed_at"]),
    )


class SqliteStore:
    """
    Persists engine state to SQLite. Thread-safe for single-writer usage.

    Usage:
        store = SqliteStore("snipe_state.db")
        await store.upsert_order(order)
        orders, positions, risk, trades = store.load_open_state()
    """

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        self._db_path = str(db_path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        conn.executescript(_SCHEMA)
        conn.commit()

    def _write(self, sql: str, params: tuple) -> int:
        with self._lock:
            conn = self._get_conn()
            cur = conn.execute(sql, params)
            conn.commit()
        return cur.rowcount

    def _read(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._get_conn().execute(sql, params).fetchall()

    # ── Sync API ────────────────────────────────────────────────────────

    def save_order(self, order: Order) -> None:
        self._write(
            "INSERT OR REPLACE INTO snipe_orders "
            "(id, market_id, market_title, side, limit_price, current_price, discount, size, "
            "status, created_at, filled_at, fill_price, ladder_index, resubmit_count, "
            "confidence, expected_fill_time, depth_score) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                order.id, order.market_id, order.market_title, order.side.value,
                order.limit_price, order.current_price_at_creation, order.discount, order.size,
                order.status.value, _ts(order.created_at), _ts(order.filled_at), order.fill_price,
                order.ladder_index, order.resubmit_count, order.confidence,
                order.expected_fill_time, order.depth_score,
            ),
        )
        logger.debug("Order saved: %s (%s)", order.id, order.status.value)

    def set_order_status(
        self, order_id: str, status: OrderStatus, fill: FillResult | None = None,
    ) -> bool:
        """Returns False if no such order is stored."""
        if fill is not None and fill.filled:
            count = self._write(
                "UPDATE snipe_orders SET status = ?, filled_at = ?, fill_price = ? WHERE id = ?",
                (status.value, _ts(fill.filled_at), fill.fill_price, order_id),
            )
        else:
            count = self._write(
                "UPDATE snipe_orders SET status = ? WHERE id = ?",
                (status.value, order_id),
            )
        if count == 0:
            logger.warning("Status update for unknown order %s", order_id)
        return count > 0

    def save_position(self, position: Position) -> None:
        self._write(
            "INSERT OR REPLACE INTO snipe_positions "
            "(id, order_id, market_id, market_title, side, entry_price, current_price, size, "
            "pnl, pnl_percent, opened_at, closed) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)",
            (
                position.id, position.order_id, position.market_id, position.market_title,
                position.side.value, position.entry_price, position.current_price,
                position.size, position.pnl, position.pnl_percent, _ts(position.opened_at),
            ),
        )

    def revalue_position(self, position: Position) -> bool:
        """Update the mark on an open position. A closed position is left alone."""
        count = self._write(
            "UPDATE snipe_positions SET current_price = ?, pnl = ?, pnl_percent = ? "
            "WHERE id = ? AND closed = 0",
            (position.current_price, position.pnl, position.pnl_percent, position.id),
        )
        return count > 0

    def save_trade(self, trade: ClosedTrade) -> None:
        """Record a closed trade and mark its position closed, in one transaction."""
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT OR IGNORE INTO snipe_trades "
                "(position_id, market_id, market_title, side, entry_price, exit_price, size, "
                "profit, profit_percent, duration_minutes, opened_at, closed_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    trade.position_id, trade.market_id, trade.market_title, trade.side.value,
                    trade.entry_price, trade.exit_price, trade.size, trade.profit,
                    trade.profit_percent, trade.duration_minutes,
                    _ts(trade.opened_at), _ts(trade.closed_at),
                ),
            )
            conn.execute(
                "UPDATE snipe_positions SET closed = 1, current_price = ? WHERE id = ?",
                (trade.exit_price, trade.position_id),
            )
            conn.commit()

    def save_state(self, key: str, data: dict) -> None:
        self._write(
            "INSERT OR REPLACE INTO engine_state (key, data_json, updated_at) VALUES (?, ?, ?)",
            (key, json.dumps(data, default=str), time.time()),
        )

    def load_state(self, key: str) -> dict | None:
        rows = self._read("SELECT data_json FROM engine_state WHERE key = ?", (key,))
        if not rows:
            return None
        try:
            return json.loads(rows[0]["data_json"])
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("Corrupt engine state for %s, ignoring: %s", key, e)
            return None

    def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        if status is None:
            rows = self._read("SELECT * FROM snipe_orders ORDER BY created_at")
        else:
            rows = self._read(
                "SELECT * FROM snipe_orders WHERE status = ? ORDER BY created_at", (status.value,),
            )
        return [_order_from_row(r) for r in rows]

    def list_open_positions(self) -> list[Position]:
        rows = self._read("SELECT * FROM snipe_positions WHERE closed = 0 ORDER BY opened_at")
        return [_position_from_row(r) for r in rows]

    def list_trades(self) -> list[ClosedTrade]:
        rows = self._read("SELECT * FROM snipe_trades ORDER BY closed_at")
        return [_trade_from_row(r) for r in rows]

    def load_open_state(
        self,
    ) -> tuple[list[Order], list[Position], RiskState | None, list[ClosedTrade]]:
        """
        Everything the engine needs to resume after a restart: pending orders,
        open positions, the last saved risk state (None if never saved) and
        closed trades, whose realized P&L the saved day baseline includes.
        """
        orders = self.list_orders(OrderStatus.PENDING)
        positions = self.list_open_positions()
        trades = self.list_trades()
        raw_risk = self.load_state(_RISK_KEY)
        risk = RiskState.from_dict(raw_risk) if raw_risk is not None else None
        logger.info(
            "Store restored: %d pending orders, %d open positions, %d trades, risk state %s",
            len(orders), len(positions), len(trades), "found" if risk else "absent",
        )
        return orders, positions, risk, trades

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def stats(self) -> dict[str, Any]:
        counts = self._read("SELECT status, COUNT(*) AS n FROM snipe_orders GROUP BY status")
        return {
            "db_path": self._db_path,
            "orders": {r["status"]: r["n"] for r in counts},
            "open_positions": len(self.list_open_positions()),
            "trades": len(self._read("SELECT position_id FROM snipe_trades")),
        }

    # ── Persistence port ────────────────────────────────────────────────

    async def upsert_order(self, order: Order) -> None:
        await asyncio.to_thread(self.save_order, order)

    async def update_order_status(
        self, order_id: str, status: OrderStatus, fill: FillResult | None = None,
    ) -> None:
        await asyncio.to_thread(self.set_order_status, order_id, status, fill)

    async def create_position(self, order: Order, position: Position) -> None:
        await asyncio.to_thread(self.save_position, position)

    async def update_position(self, position: Position) -> None:
        await asyncio.to_thread(self.revalue_position, position)

    async def record_trade(self, trade: ClosedTrade) -> None:
        await asyncio.to_thread(self.save_trade, trade)

    async def save_risk_state(self, state: dict) -> None:
        await asyncio.to_thread(self.save_state, _RISK_KEY, state)
