"""
Static venue definitions and policy constants.

Venues are read-only and available before any connection is opened.
"""

from __future__ import annotations

from .types import VenueIdentity

# Levels kept per side after normalization
DEPTH_LEVELS = 15

# Fixed reconnect delay, no backoff and no retry cap
RECONNECT_DELAY_SEC = 5.0

# aiohttp websocket heartbeat (ping) interval
WS_HEARTBEAT_SEC = 20.0

# REST snapshot request timeout
REST_TIMEOUT_SEC = 10.0

DEFAULT_VENUE = "okx"

DEFAULT_LOG_PATH = "logs/dom_sim.log"


class UnknownVenueError(LookupError):
    """Raised when a venue id has no definition or adapter."""

    def __init__(self, venue_id: str) -> None:
        super().__init__(f"Unknown venue: {venue_id!r}")
        self.venue_id = venue_id


VENUES: dict[str, VenueIdentity] = {
    "okx": VenueIdentity(
        id="okx",
        name="OKX",
        ws_url="wss://ws.okx.com:8443/ws/v5/public",
        rest_url="https://www.okx.com/api/v5/market/books",
        symbol="BTC-USDT",
    ),
    "bybit": VenueIdentity(
        id="bybit",
        name="Bybit",
        ws_url="wss://stream.bybit.com/v5/public/spot",
        rest_url="https://api.bybit.com/v5/market/orderbook",
        symbol="BTCUSDT",
    ),
    "deribit": VenueIdentity(
        id="deribit",
        name="Deribit",
        ws_url="wss://www.deribit.com/ws/api/v2",
        rest_url="https://www.deribit.com/api/v2/public/get_order_book",
        symbol="BTC-PERPETUAL",
    ),
}


def get_venue(venue_id: str) -> VenueIdentity:
    try:
        return VENUES[venue_id]
    except KeyError:
        raise UnknownVenueError(venue_id) from None
