"""
Polymarket implementation of the MarketData port: Gamma for markets and
prices, CLOB for per-token order books.
"""

from __future__ import annotations

import logging

import httpx

from client.clob import ClobBookClient
from client.gamma import GammaClient
from client.http import DEFAULT_MAX_RETRIES
from config import EngineSettings
from scanner.models import Market, OrderBook, Side

logger = logging.getLogger(__name__)


class PolymarketData:
    """
    Async market data over one shared httpx connection pool.

    Order books are keyed by outcome token, so the market -> token mapping
    from the latest listing (or single-market fetch) is cached.
    """

    def __init__(
        self,
        gamma_host: str = "https://gamma-api.polymarket.com",
        clob_host: str = "https://clob.polymarket.com",
        timeout_sec: float = 15.0,
        page_size: int = 50,
        http: httpx.AsyncClient | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout_sec)
        self._gamma = GammaClient(self._http, gamma_host, max_retries)
        self._clob = ClobBookClient(self._http, clob_host, max_retries)
        self._page_size = page_size
        self._markets: dict[str, Market] = {}

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> PolymarketData:
        return cls(
            gamma_host=settings.gamma_host,
            clob_host=settings.clob_host,
            timeout_sec=settings.http_timeout_sec,
            page_size=settings.market_page_size,
        )

    async def __aenter__(self) -> PolymarketData:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def list_markets(self) -> list[Market]:
        markets = await self._gamma.get_markets(limit=self._page_size)
        for m in markets:
            self._markets[m.market_id] = m
        return markets

    async def get_market_by_id(self, market_id: str) -> Market | None:
        market = await self._gamma.get_market(market_id)
        if market is not None:
            self._markets[market_id] = market
        return market

    async def get_order_book(self, market_id: str, side: Side = Side.YES) -> OrderBook | None:
        market = self._markets.get(market_id)
        if market is None:
            market = await self.get_market_by_id(market_id)
            if market is None:
                return None
        token_id = market.token_for(side)
        if not token_id:
            return None
        return await self._clob.get_orderbook(token_id, market_id, side)
