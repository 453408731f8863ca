"""
Closed-trade ledger. Append-only ndjson, one trade per line.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path

from scanner.models import ClosedTrade

logger = logging.getLogger(__name__)

LEDGER_FILE = "snipe_trades.ndjson"


class TradeLedger:
    def __init__(self, ledger_path: str | Path = LEDGER_FILE) -> None:
        self._path = Path(ledger_path)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, trade: ClosedTrade) -> None:
        entry = asdict(trade)
        entry["side"] = trade.side.value
        entry["opened_at"] = trade.opened_at.isoformat()
        entry["closed_at"] = trade.closed_at.isoformat()
        with open(self._path, "a") as f:
            f.write(json.dumps(entry, separators=(",", ":")) + "\n")
        logger.info(
            "Trade closed: %s %s profit=$%.2f (%.1f%%) after %dmin",
            trade.market_id, trade.side.value, trade.profit, trade.profit_percent,
            trade.duration_minutes,
        )

    def read_all(self) -> list[dict]:
        """Every ledger entry. Corrupt lines are skipped with a warning."""
        if not self._path.exists():
            return []
        entries = []
        with open(self._path) as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning("Corrupt ledger line %d in %s: %s", lineno, self._path, e)
        return entries
