"""
Engine settings loaded from environment variables (prefix SNIPE_) or .env.
Frozen: the only way to change a setting at runtime is updated(), which
re-validates the whole object.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SNIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        frozen=True,
        extra="ignore",
    )

    # Opportunity and pricing
    min_profit_percent: float = Field(default=5.0, ge=0)
    target_discount: float = Field(default=3.0, gt=0, le=15.0)
    max_position_size: float = Field(default=100.0, gt=0)
    min_liquidity: float = Field(default=1000.0, ge=0)
    max_spread: float = Field(default=10.0, gt=0)

    # Order lifecycle
    timeout_minutes: float = Field(default=60.0, gt=0)
    max_concurrent_orders: int = Field(default=10, ge=1)
    enable_laddering: bool = True
    ladder_orders: int = Field(default=3, ge=1, le=10)
    # Tiers are spread over this % below the recommended price
    ladder_price_range_percent: float = Field(default=2.0, ge=0, le=20.0)
    resubmit_after_cancel: bool = True
    max_resubmits: int = Field(default=2, ge=0)

    # Risk
    daily_loss_limit: float = Field(default=50.0, gt=0)

    # Execution modes. real_trading_mode forces manual confirmation.
    auto_execute: bool = False
    real_trading_mode: bool = False

    # Timing
    scan_interval_seconds: float = Field(default=30.0, gt=0)
    fill_check_interval_sec: float = Field(default=5.0, gt=0)
    order_management_interval_sec: float = Field(default=10.0, gt=0)
    price_refresh_interval_sec: float = Field(default=5.0, gt=0)

    # Market data
    gamma_host: str = "https://gamma-api.polymarket.com"
    clob_host: str = "https://clob.polymarket.com"
    http_timeout_sec: float = Field(default=15.0, gt=0)
    market_page_size: int = Field(default=50, ge=1, le=500)

    # Storage and logging
    state_db: str = "snipe_state.db"
    ledger_path: str = "snipe_trades.ndjson"
    log_level: str = "INFO"

    @property
    def auto_execute_enabled(self) -> bool:
        """Auto-execution never runs in real trading mode."""
        return self.auto_execute and not self.real_trading_mode

    @property
    def ladder_tiers(self) -> int:
        """Tier count actually used when placing an opportunity."""
        if self.enable_laddering and self.ladder_orders > 1:
            return self.ladder_orders
        return 1

    def updated(self, **changes: Any) -> EngineSettings:
        """Return a re-validated copy with changes applied. Raises ValidationError."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {sorted(unknown)}")
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


def load_settings(**overrides: Any) -> EngineSettings:
    """Load and validate settings from environment. Raises on invalid values."""
    return EngineSettings(**overrides)
