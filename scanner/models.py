"""
Data models for the snipe engine. Pure data, no behavior.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Side(Enum):
    YES = "yes"
    NO = "no"


class OrderStatus(str, Enum):
    """Order lifecycle states. Everything except PENDING is terminal."""
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


@dataclass(frozen=True)
class PriceLevel:
    price: float
    size: float


@dataclass(frozen=True)
class OrderBook:
    market_id: str
    side: Side
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]


@dataclass(frozen=True)
class Market:
    market_id: str
    question: str
    yes_price: float
    no_price: float
    liquidity: float = 0.0
    yes_token_id: str = ""
    no_token_id: str = ""
    active: bool = True
    volume: float = 0.0

    def price_for(self, side: Side) -> float:
        return self.yes_price if side == Side.YES else self.no_price

    def token_for(self, side: Side) -> str:
        return self.yes_token_id if side == Side.YES else self.no_token_id

    @property
    def outcome_spread_percent(self) -> float:
        """How far YES + NO implied probabilities stray from 1.0, as % of their mean."""
        total = self.yes_price + self.no_price
        if total <= 0:
            return float("inf")
        return abs(total - 1.0) / (total / 2.0) * 100.0


@dataclass(frozen=True)
class OrderBookDepth:
    market_id: str
    side: Side
    best_bid: float
    best_ask: float
    spread: float
    spread_percent: float
    bid_depth: int
    ask_depth: int
    total_bid_volume: float
    total_ask_volume: float
    liquidity: float  # USD
    depth_score: int  # 0..10


@dataclass(frozen=True)
class OptimalPrice:
    market_id: str
    side: Side
    current_price: float
    recommended_price: float
    discount: float  # percent below current_price
    expected_fill_time: float  # minutes
    confidence: int  # 0..100
    reasoning: str

    @property
    def implied_profit_percent(self) -> float:
        return (self.current_price - self.recommended_price) / self.recommended_price * 100.0


@dataclass(frozen=True)
class LadderTier:
    price: float
    size: float
    discount: float


@dataclass(frozen=True)
class OrderLadder:
    market_id: str
    side: Side
    total_size: float
    tiers: tuple[LadderTier, ...]
    avg_price: float
    total_discount: float


@dataclass(frozen=True)
class Opportunity:
    market: Market
    optimal_price: OptimalPrice
    depth: OrderBookDepth

    @property
    def confidence(self) -> int:
        return self.optimal_price.confidence

    @property
    def side(self) -> Side:
        return self.optimal_price.side


@dataclass(frozen=True)
class Order:
    id: str
    market_id: str
    market_title: str
    side: Side
    limit_price: float
    current_price_at_creation: float
    discount: float
    size: float
    created_at: datetime
    status: OrderStatus = OrderStatus.PENDING
    filled_at: datetime | None = None
    fill_price: float | None = None
    ladder_index: int | None = None
    resubmit_count: int = 0
    # Audit fields carried from the pricing that produced the order
    confidence: int = 0
    expected_fill_time: float = 0.0
    depth_score: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING


@dataclass(frozen=True)
class FillResult:
    order_id: str
    filled: bool
    fill_price: float | None = None
    fill_size: float | None = None
    filled_at: datetime | None = None


@dataclass(frozen=True)
class Position:
    id: str
    order_id: str
    market_id: str
    market_title: str
    side: Side
    entry_price: float
    current_price: float
    size: float
    opened_at: datetime
    pnl: float = 0.0
    pnl_percent: float = 0.0


@dataclass(frozen=True)
class ClosedTrade:
    position_id: str
    market_id: str
    market_title: str
    side: Side
    entry_price: float
    exit_price: float
    size: float
    profit: float
    profit_percent: float
    duration_minutes: int
    opened_at: datetime
    closed_at: datetime
