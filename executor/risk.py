"""
Daily loss limit and emergency stop. The only component allowed to halt
automation engine-wide.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date

logger = logging.getLogger(__name__)


class RiskLimitBreach(Exception):
    """Raised when the daily loss limit trips. Scanning halts until reset_daily_limit()."""
    pass


@dataclass
class RiskState:
    is_running: bool = False
    is_daily_limit_reached: bool = False
    today_start_pnl: float = 0.0
    trading_day: date | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["trading_day"] = self.trading_day.isoformat() if self.trading_day else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> RiskState:
        day = data.get("trading_day")
        return cls(
            # A restarted process never resumes running on its own
            is_running=False,
            is_daily_limit_reached=bool(data.get("is_daily_limit_reached", False)),
            today_start_pnl=float(data.get("today_start_pnl", 0.0)),
            trading_day=date.fromisoformat(day) if day else None,
        )


class RiskGuard:
    """
    Tracks today's P&L against a baseline taken at local midnight (or at the
    last manual reset). Trips when today's loss exceeds the daily limit.
    """

    def __init__(self, state: RiskState | None = None) -> None:
        self._state = state or RiskState()

    @property
    def state(self) -> RiskState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def can_scan(self) -> bool:
        return self._state.is_running and not self._state.is_daily_limit_reached

    def today_pnl(self, total_pnl: float) -> float:
        """total_pnl is realized + unrealized across the whole session."""
        return total_pnl - self._state.today_start_pnl

    def evaluate(self, total_pnl: float, daily_loss_limit: float) -> float:
        """
        Check today's P&L against the limit. Returns today's P&L.
        Raises RiskLimitBreach the first time the limit is crossed.
        """
        today = self.today_pnl(total_pnl)
        if today < -daily_loss_limit and not self._state.is_daily_limit_reached:
            self._state.is_daily_limit_reached = True
            self._state.is_running = False
            raise RiskLimitBreach(
                f"Daily loss limit reached: ${today:.2f} < -${daily_loss_limit:.2f}"
            )
        return today

    def roll_day(self, today: date, total_pnl: float) -> bool:
        """
        Rebaseline at the first evaluation of a new local day. The limit flag
        stays set: recovery still needs reset_daily_limit(). Returns True on rollover.
        """
        if self._state.trading_day == today:
            return False
        previous = self._state.trading_day
        self._state.trading_day = today
        self._state.today_start_pnl = total_pnl
        if previous is not None:
            logger.info("New trading day %s: P&L baseline $%.2f", today.isoformat(), total_pnl)
        return True

    def start(self) -> None:
        """Resume automation. Refused while the daily limit is tripped."""
        if self._state.is_daily_limit_reached:
            raise RiskLimitBreach("Daily loss limit reached. Reset the limit before starting.")
        self._state.is_running = True
        logger.info("Engine started")

    def stop(self) -> None:
        self._state.is_running = False
        logger.info("Engine stopped")

    def emergency_stop(self) -> None:
        """Halt unconditionally, independent of the loss-limit logic."""
        self._state.is_running = False
        logger.critical("EMERGENCY STOP: all scanning stopped")

    def reset_daily_limit(self, total_pnl: float) -> None:
        """Operator acknowledgment: clear the flag and rebaseline to current total."""
        self._state.is_daily_limit_reached = False
        self._state.today_start_pnl = total_pnl
        logger.warning("Daily limit reset, new baseline $%.2f", total_pnl)
