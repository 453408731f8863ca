"""
Shared async GET helper for the Gamma and CLOB REST APIs.
"""

from __future__ import annotations

import asyncio
import json
import logging

import httpx

from scanner.errors import NetworkFailure

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
_RETRY_BACKOFF_SEC = 0.5


async def get_json(
    http: httpx.AsyncClient,
    url: str,
    params: dict | None = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> dict | list | None:
    """
    GET a JSON payload.

    Returns None on 404 or a body that is not JSON. Raises NetworkFailure on
    any other HTTP error status, and on transport errors once retries run out.
    Only transport-level errors (connection resets, timeouts) are retried.
    """
    for attempt in range(max_retries):
        try:
            resp = await http.get(url, params=params)
        except httpx.TransportError as exc:
            if attempt == max_retries - 1:
                raise NetworkFailure(f"GET {url} failed: {exc}") from exc
            wait = _RETRY_BACKOFF_SEC * (2 ** attempt)
            logger.debug("HTTP retry %d/%d after %.1fs: %s", attempt + 1, max_retries, wait, exc)
            await asyncio.sleep(wait)
            continue

        if resp.status_code == 404:
            return None
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkFailure(f"GET {url} returned {resp.status_code}") from exc
        try:
            return resp.json()
        except json.JSONDecodeError:
            logger.debug("Non-JSON body from %s", url)
            return None
    raise NetworkFailure(f"GET {url} failed: no attempts made")
