"""
CLOB order book reader. Read-only REST, converts raw levels to our domain models.
"""

from __future__ import annotations

import logging

import httpx

from client.http import DEFAULT_MAX_RETRIES, get_json
from scanner.depth import sort_levels
from scanner.models import OrderBook, PriceLevel, Side

logger = logging.getLogger(__name__)


def parse_levels(raw_levels) -> list[PriceLevel]:
    """Raw {"price": "0.55", "size": "120"} entries. Unparseable or empty levels are dropped."""
    levels = []
    for lvl in raw_levels or []:
        try:
            price = float(lvl["price"])
            size = float(lvl["size"])
        except (KeyError, TypeError, ValueError):
            continue
        if price > 0 and size > 0:
            levels.append(PriceLevel(price=price, size=size))
    return levels


def parse_book(raw: dict, market_id: str, side: Side) -> OrderBook | None:
    if not isinstance(raw, dict):
        return None
    bids, asks = sort_levels(parse_levels(raw.get("bids")), parse_levels(raw.get("asks")))
    return OrderBook(market_id=market_id, side=side, bids=bids, asks=asks)


class ClobBookClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        clob_host: str = "https://clob.polymarket.com",
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self._http = http
        self._host = clob_host.rstrip("/")
        self._max_retries = max_retries

    async def get_orderbook(self, token_id: str, market_id: str, side: Side) -> OrderBook | None:
        """Fetch the book for one outcome token. None if the venue has no book for it."""
        raw = await get_json(
            self._http, f"{self._host}/book", {"token_id": token_id}, self._max_retries,
        )
        if raw is None:
            return None
        book = parse_book(raw, market_id, side)
        if book is None:
            logger.debug("Malformed book for %s %s", market_id, side.value)
        return book
