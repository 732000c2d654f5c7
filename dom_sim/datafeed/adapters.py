"""
Per-venue feed normalization.

Every supported venue has one VenueAdapter subclass that turns that venue's
websocket (and REST) order book payloads into a canonical OrderbookSnapshot.

Rules shared by all adapters:
1. Control messages (subscribe acks, heartbeats, RPC replies) -> None
2. Malformed or unparsable entries are dropped one by one, never the message
3. Each side is deduplicated by price (last write wins), sorted best-first
   and cut to DEPTH_LEVELS
4. captured_at_ms is stamped locally, feed timestamps are ignored

Adding a venue = one new subclass + register_adapter(); nothing else changes.
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable

import orjson

from ..config import DEPTH_LEVELS, VENUES, UnknownVenueError
from ..types import OrderbookSnapshot, PriceLevel

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_number(value: Any) -> float | None:
    """
    Parse a venue price/size field into a finite non-negative float.

    Accepts string decimals ("64000.5") and native numbers. bool is rejected
    even though it subclasses int.
    """
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(number) or number < 0:
        return None
    return number


def parse_levels(entries: Any, descending: bool, depth: int = DEPTH_LEVELS) -> tuple[PriceLevel, ...]:
    """
    Turn [[price, size, ...], ...] into a sorted, truncated level tuple.

    Args:
        entries: Raw side from the feed
        descending: True for bids (highest first), False for asks
        depth: Levels kept after sorting

    Entries that are not sequences of at least two parsable numbers are skipped.
    """
    if not isinstance(entries, (list, tuple)):
        return ()

    # price -> size, later entries overwrite earlier ones
    book: dict[float, float] = {}
    for entry in entries:
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            continue
        price = parse_number(entry[0])
        size = parse_number(entry[1])
        if price is None or size is None:
            continue
        if size == 0:
            book.pop(price, None)
            continue
        book[price] = size

    prices = sorted(book, reverse=descending)[:depth]
    return tuple(PriceLevel(price, book[price]) for price in prices)


class VenueAdapter(ABC):
    """Parses one venue's raw messages into snapshots."""

    venue_id: str = ""

    def __init__(self, fallback_symbol: str = "", clock: Clock = now_ms, depth: int = DEPTH_LEVELS) -> None:
        self.fallback_symbol = fallback_symbol
        self.clock = clock
        self.depth = depth

    def normalize(self, raw: Any) -> OrderbookSnapshot | None:
        """
        Normalize one websocket message.

        Returns None for control messages and for anything that cannot be
        interpreted as an order book update. Never raises on bad data.
        """
        message = decode_message(raw)
        if message is None:
            return None
        try:
            return self._parse_message(message)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            logger.debug("%s: unreadable book message (%s)", self.venue_id, exc)
            return None

    def normalize_rest(self, payload: Any) -> OrderbookSnapshot | None:
        """Normalize one REST depth response. Same failure policy as normalize()."""
        message = decode_message(payload)
        if message is None:
            return None
        try:
            return self._parse_rest(message)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            logger.debug("%s: unreadable REST book (%s)", self.venue_id, exc)
            return None

    @abstractmethod
    def subscribe_message(self, symbol: str) -> dict:
        """Outbound subscription request sent once after the socket opens."""

    @abstractmethod
    def rest_params(self, symbol: str) -> dict[str, str]:
        """Query parameters for the REST depth endpoint."""

    @abstractmethod
    def _parse_message(self, message: dict) -> OrderbookSnapshot | None:
        pass

    @abstractmethod
    def _parse_rest(self, message: dict) -> OrderbookSnapshot | None:
        pass

    def _build(self, bids: Any, asks: Any, symbol: Any) -> OrderbookSnapshot | None:
        if not isinstance(bids, (list, tuple)) or not isinstance(asks, (list, tuple)):
            return None
        return OrderbookSnapshot(
            bids=parse_levels(bids, descending=True, depth=self.depth),
            asks=parse_levels(asks, descending=False, depth=self.depth),
            captured_at_ms=self.clock(),
            symbol=symbol if isinstance(symbol, str) and symbol else self.fallback_symbol,
        )


def decode_message(raw: Any) -> dict | None:
    """Decode str/bytes JSON with orjson; pass dicts through; anything else -> None."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (str, bytes, bytearray, memoryview)):
        try:
            decoded = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.debug("Dropping non-JSON message: %.80r", raw)
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


class OkxAdapter(VenueAdapter):
    """
    OKX v5 public `books` channel.

    Data format: {arg: {...}, action, data: [{asks: [[px, sz, "0", n], ...], bids: [...], instId?, ts}]}
    """

    venue_id = "okx"

    def subscribe_message(self, symbol: str) -> dict:
        return {"op": "subscribe", "args": [{"channel": "books", "instId": symbol}]}

    def rest_params(self, symbol: str) -> dict[str, str]:
        return {"instId": symbol, "sz": str(self.depth)}

    def _parse_message(self, message: dict) -> OrderbookSnapshot | None:
        # {"event": "subscribe" | "error", ...}
        if "event" in message or not message.get("data"):
            return None
        book = message["data"][0]
        symbol = book.get("instId") or message.get("arg", {}).get("instId")
        return self._build(book.get("bids"), book.get("asks"), symbol)

    def _parse_rest(self, message: dict) -> OrderbookSnapshot | None:
        if message.get("code") != "0" or not message.get("data"):
            return None
        book = message["data"][0]
        return self._build(book.get("bids"), book.get("asks"), book.get("instId"))


class BybitAdapter(VenueAdapter):
    """
    Bybit v5 spot `orderbook.1.<symbol>` topic.

    Data format: {topic, type: snapshot|delta, ts, data: {s, b: [[px, sz]], a: [[px, sz]], u, seq}}
    """

    venue_id = "bybit"

    def subscribe_message(self, symbol: str) -> dict:
        return {"op": "subscribe", "args": [f"orderbook.1.{symbol}"]}

    def rest_params(self, symbol: str) -> dict[str, str]:
        return {"category": "spot", "symbol": symbol, "limit": str(self.depth)}

    def _parse_message(self, message: dict) -> OrderbookSnapshot | None:
        # Acks look like {"success": true, "op": "subscribe", ...}
        topic = message.get("topic")
        if not isinstance(topic, str) or "orderbook" not in topic:
            return None
        book = message.get("data")
        if not isinstance(book, dict):
            return None
        return self._build(book.get("b"), book.get("a"), book.get("s"))

    def _parse_rest(self, message: dict) -> OrderbookSnapshot | None:
        if message.get("retCode") != 0 or not isinstance(message.get("result"), dict):
            return None
        book = message["result"]
        return self._build(book.get("b"), book.get("a"), book.get("s"))


# Raw book entries are [action, price, amount]
_DERIBIT_ACTIONS = frozenset({"new", "change", "delete"})


class DeribitAdapter(VenueAdapter):
    """
    Deribit v2 JSON-RPC `book.<instrument>.100ms` subscription.

    Data format: {method: "subscription", params: {channel, data: {instrument_name, bids, asks, ...}}}
    Levels arrive either as [price, amount] numbers or as [action, price, amount].
    """

    venue_id = "deribit"

    def subscribe_message(self, symbol: str) -> dict:
        return {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "public/subscribe",
            "params": {"channels": [f"book.{symbol}.100ms"]},
        }

    def rest_params(self, symbol: str) -> dict[str, str]:
        return {"instrument_name": symbol, "depth": str(self.depth)}

    def _parse_message(self, message: dict) -> OrderbookSnapshot | None:
        # RPC replies carry "result"/"id", heartbeats use method "heartbeat"
        if message.get("method") != "subscription":
            return None
        book = message.get("params", {}).get("data")
        if not isinstance(book, dict):
            return None
        bids, asks = book.get("bids"), book.get("asks")
        if not isinstance(bids, list) or not isinstance(asks, list):
            logger.warning("deribit: book without bid/ask arrays, keys=%s", sorted(book))
            return None
        return self._build(_strip_actions(bids), _strip_actions(asks), book.get("instrument_name"))

    def _parse_rest(self, message: dict) -> OrderbookSnapshot | None:
        book = message.get("result")
        if not isinstance(book, dict):
            return None
        return self._build(book.get("bids"), book.get("asks"), book.get("instrument_name"))


def _strip_actions(entries: Iterable[Any]) -> list[Any]:
    """Convert [action, price, amount] entries to [price, amount]; deletes are dropped."""
    result = []
    for entry in entries:
        if isinstance(entry, (list, tuple)) and entry and isinstance(entry[0], str) \
                and entry[0] in _DERIBIT_ACTIONS:
            if entry[0] == "delete":
                continue
            result.append(entry[1:])
        else:
            result.append(entry)
    return result


# venue id -> adapter instance
ADAPTERS: dict[str, VenueAdapter] = {}


def register_adapter(adapter: VenueAdapter) -> VenueAdapter:
    ADAPTERS[adapter.venue_id] = adapter
    return adapter


def get_adapter(venue_id: str) -> VenueAdapter:
    try:
        return ADAPTERS[venue_id]
    except KeyError:
        raise UnknownVenueError(venue_id) from None


def normalize(venue_id: str, raw: Any) -> OrderbookSnapshot | None:
    """Normalize a raw message for the given venue. Unknown venue ids raise UnknownVenueError."""
    return get_adapter(venue_id).normalize(raw)


for _adapter_cls in (OkxAdapter, BybitAdapter, DeribitAdapter):
    _venue = VENUES[_adapter_cls.venue_id]
    register_adapter(_adapter_cls(fallback_symbol=_venue.symbol))
