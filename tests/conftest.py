"""
Pytest configuration and shared fakes.

No test touches the network: websockets are replaced by FakeWebSocket and
reconnect scheduling by FakeLoop, so timer firing is explicit.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, NamedTuple

import aiohttp
import pytest

# Add the repo root to sys.path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from dom_sim.store import MarketStateStore
from dom_sim.types import OrderbookSnapshot, PriceLevel


def make_snapshot(bids=(), asks=(), symbol="BTC-USDT", captured_at_ms=1_700_000_000_000) -> OrderbookSnapshot:
    """Build a snapshot from (price, size) pairs, given best-first."""
    return OrderbookSnapshot(
        bids=tuple(PriceLevel(p, s) for p, s in bids),
        asks=tuple(PriceLevel(p, s) for p, s in asks),
        captured_at_ms=captured_at_ms,
        symbol=symbol,
    )


class FakeMessage(NamedTuple):
    type: aiohttp.WSMsgType
    data: Any


class FakeWebSocket:
    """Async-iterable stand-in for aiohttp.ClientWebSocketResponse."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()
        self._exception: BaseException | None = None

    async def send_json(self, data: dict) -> None:
        self.sent.append(data)

    def push_text(self, data: str) -> None:
        self._queue.put_nowait(FakeMessage(aiohttp.WSMsgType.TEXT, data))

    def push_error(self, exc: BaseException) -> None:
        self._exception = exc
        self._queue.put_nowait(FakeMessage(aiohttp.WSMsgType.ERROR, None))

    def push_raise(self, exc: BaseException) -> None:
        """Make the next read raise exc."""
        self._queue.put_nowait(exc)

    def finish(self) -> None:
        """Server-side close."""
        self._queue.put_nowait(None)

    def exception(self) -> BaseException | None:
        return self._exception

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> FakeMessage:
        msg = await self._queue.get()
        if msg is None:
            raise StopAsyncIteration
        if isinstance(msg, BaseException):
            raise msg
        return msg


class FakeConnector:
    """Hands out queued sockets (or raises queued exceptions) and records urls."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.urls: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.urls)

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        result = self.results.pop(0) if self.results else FakeWebSocket()
        if isinstance(result, BaseException):
            raise result
        return result


class FakeHandle:
    def __init__(self, delay: float, callback, args) -> None:
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Records call_later() requests; fire() runs the live ones."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def call_later(self, delay, callback, *args) -> FakeHandle:
        handle = FakeHandle(delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled]

    def fire(self) -> int:
        """Run every pending callback once. Returns how many ran."""
        due = self.pending
        for handle in due:
            handle.cancelled = True
            handle.callback(*handle.args)
        return len(due)


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def store() -> MarketStateStore:
    return MarketStateStore()


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def book() -> OrderbookSnapshot:
    """asks [(100, 2), (101, 3)], bids [(99, 5)]"""
    return make_snapshot(bids=[(99.0, 5.0)], asks=[(100.0, 2.0), (101.0, 3.0)])


async def no_rest_snapshot(session, venue) -> None:
    """Fetcher for FeedController tests that must not seed from REST."""
    return None
