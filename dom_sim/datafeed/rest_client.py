"""
One-shot REST depth snapshots.

Used to seed the store before the websocket delivers and by the CLI --once
mode. Failures never propagate: they are logged and reported as None.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp
import orjson

from ..config import REST_TIMEOUT_SEC
from ..types import OrderbookSnapshot, VenueIdentity
from .adapters import get_adapter

logger = logging.getLogger(__name__)


async def fetch_snapshot(
    session: aiohttp.ClientSession,
    venue: VenueIdentity,
    timeout_sec: float = REST_TIMEOUT_SEC,
) -> OrderbookSnapshot | None:
    """Fetch and normalize the venue's current book via its REST depth endpoint."""
    adapter = get_adapter(venue.id)
    params = adapter.rest_params(venue.symbol)
    try:
        async with session.get(
            venue.rest_url,
            params=params,
            timeout=aiohttp.ClientTimeout(total=timeout_sec),
        ) as resp:
            resp.raise_for_status()
            data = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.error("Error fetching %s order book via REST: %s", venue.id, exc)
        return None

    try:
        payload = orjson.loads(data)
    except orjson.JSONDecodeError as exc:
        logger.error("%s REST response is not JSON: %s", venue.id, exc)
        return None

    snapshot = adapter.normalize_rest(payload)
    if snapshot is None:
        logger.warning("%s REST response did not contain an order book", venue.id)
    return snapshot
