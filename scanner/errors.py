"""
Error taxonomy for scanning and order management.

Only RiskLimitBreach (executor/risk.py) changes engine-wide state. Everything
here is absorbed at the market or order it concerns.
"""

from __future__ import annotations


class SnipeError(Exception):
    """Base class for engine errors."""
    pass


class DataUnavailable(SnipeError):
    """Order book or market payload is empty or malformed. Skip the item this tick."""
    pass


class NetworkFailure(SnipeError):
    """A market or order query failed in transport. Retried by the next periodic tick."""
    pass


class OpportunityRejected(SnipeError):
    """A candidate failed a confidence/profit/depth threshold. Never surfaced."""

    def __init__(self, market_id: str, reason: str) -> None:
        super().__init__(f"{market_id}: {reason}")
        self.market_id = market_id
        self.reason = reason
