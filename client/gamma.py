"""
Gamma API client for market discovery and price snapshots. Pure REST, no SDK dependency.
"""

from __future__ import annotations

import json
import logging

import httpx

from client.http import DEFAULT_MAX_RETRIES, get_json
from scanner.models import Market

logger = logging.getLogger(__name__)


def _json_list(raw) -> list | None:
    """Gamma sends some list fields as JSON-encoded strings."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return None
    return raw if isinstance(raw, list) else None


def _float(raw, default: float = 0.0) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def parse_market(m: dict) -> Market | None:
    """
    Convert one Gamma market payload to our Market model.
    Returns None for non-binary or malformed markets.
    """
    if not isinstance(m, dict):
        return None

    market_id = str(m.get("id") or m.get("conditionId") or m.get("condition_id") or "")
    if not market_id:
        return None

    # clobTokenIds may be a JSON string or a list
    token_ids = _json_list(m.get("clobTokenIds") or m.get("clob_token_ids"))
    if not token_ids or len(token_ids) < 2:
        return None

    prices = _json_list(m.get("outcomePrices") or m.get("outcome_prices"))
    if not prices or len(prices) < 2:
        return None
    yes_price = _float(prices[0])
    no_price = _float(prices[1])

    return Market(
        market_id=market_id,
        question=m.get("question") or m.get("title") or "",
        yes_price=yes_price,
        no_price=no_price,
        liquidity=_float(m.get("liquidityNum", m.get("liquidity"))),
        yes_token_id=str(token_ids[0]),
        no_token_id=str(token_ids[1]),
        active=bool(m.get("active", True)) and not bool(m.get("closed", False)),
        volume=_float(m.get("volumeNum", m.get("volume"))),
    )


class GammaClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        gamma_host: str = "https://gamma-api.polymarket.com",
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self._http = http
        self._host = gamma_host.rstrip("/")
        self._max_retries = max_retries

    async def get_markets(self, limit: int = 50, offset: int = 0) -> list[Market]:
        """One page of active, open markets. Malformed entries are dropped."""
        params = {
            "active": "true",
            "closed": "false",
            "limit": limit,
            "offset": offset,
        }
        raw = await get_json(self._http, f"{self._host}/markets", params, self._max_retries)
        if raw is None:
            return []
        # Some deployments wrap the list
        if isinstance(raw, dict):
            raw = raw.get("data") or raw.get("markets") or []
        if not isinstance(raw, list):
            logger.warning("Unexpected Gamma /markets payload: %s", type(raw).__name__)
            return []

        markets = []
        for m in raw:
            market = parse_market(m)
            if market is not None:
                markets.append(market)
        logger.debug("Gamma: %d/%d markets parsed (offset %d)", len(markets), len(raw), offset)
        return markets

    async def get_market(self, market_id: str) -> Market | None:
        raw = await get_json(self._http, f"{self._host}/markets/{market_id}", None, self._max_retries)
        if raw is None:
            return None
        return parse_market(raw)
