"""
Per-venue websocket connection management with async orchestration.

Handles:
1. Open socket + venue subscribe message
2. Feeding every text frame to the venue adapter, in arrival order
3. Connection state bookkeeping in the MarketStateStore
4. Exactly one reconnect after a fixed delay on close or error

State machine per venue:

    disconnected -> connecting -> connected -> disconnected | error
    error -> disconnected   (when the reconnect timer fires)

A manual disconnect() cancels the pending reconnect and suppresses retries.
Each connect() bumps a generation counter; a superseded socket's handler
sees a stale generation and stops writing to the store.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Mapping

import aiohttp

from ..config import RECONNECT_DELAY_SEC, VENUES, WS_HEARTBEAT_SEC, UnknownVenueError
from ..store import MarketStateStore
from ..types import ConnectionState, OrderbookSnapshot, VenueIdentity
from .adapters import VenueAdapter, get_adapter
from .rest_client import fetch_snapshot

logger = logging.getLogger(__name__)

# url -> open websocket (aiohttp.ClientWebSocketResponse or anything with the same surface)
Connector = Callable[[str], Awaitable[Any]]
# (session, venue) -> REST snapshot or None
SnapshotFetcher = Callable[[aiohttp.ClientSession, VenueIdentity], Awaitable[OrderbookSnapshot | None]]


class ReconnectTimer:
    """
    Owns at most one pending reconnect callback.

    schedule() always cancels the previous handle first, so there is never
    more than one reconnect in flight for a venue.
    """

    __slots__ = ('delay_sec', '_loop', '_handle')

    def __init__(self, delay_sec: float = RECONNECT_DELAY_SEC, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.delay_sec = delay_sec
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, callback: Callable[[], None]) -> None:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_sec, self._fire, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback: Callable[[], None]) -> None:
        self._handle = None
        callback()


class ConnectionManager:
    """
    Live feed for one venue.

    Usage:
        manager = ConnectionManager(VENUES["okx"], store)
        manager.connect()          # inside a running event loop
        ...
        await manager.disconnect()
    """

    def __init__(
        self,
        venue: VenueIdentity,
        store: MarketStateStore,
        adapter: VenueAdapter | None = None,
        *,
        connector: Connector | None = None,
        reconnect_delay_sec: float = RECONNECT_DELAY_SEC,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.venue = venue
        self.store = store
        self.adapter = adapter or get_adapter(venue.id)
        self._connector = connector
        self._session: aiohttp.ClientSession | None = None
        self._timer = ReconnectTimer(reconnect_delay_sec, loop)

        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self._generation = 0
        self._manual_close = False

    @property
    def state(self) -> ConnectionState:
        return self.store.connection_state(self.venue.id)

    @property
    def reconnect_pending(self) -> bool:
        return self._timer.pending

    @property
    def is_active(self) -> bool:
        """True while a connection task is running or a reconnect is pending."""
        return (self._task is not None and not self._task.done()) or self._timer.pending

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def connect(self) -> asyncio.Task:
        """
        Start connecting. Must be called from within a running event loop.

        While a connection task is alive this is a no-op and returns that task.
        """
        if self._task is not None and not self._task.done():
            return self._task

        self._manual_close = False
        self._timer.cancel()
        self._generation += 1
        self._set_state(ConnectionState.CONNECTING)
        if self.store.snapshot(self.venue.id) is None:
            self.store.set_loading(True)

        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation), name=f"feed-{self.venue.id}"
        )
        return self._task

    async def disconnect(self) -> None:
        """Close the socket, cancel any pending reconnect and stay disconnected."""
        self._manual_close = True
        self._timer.cancel()
        self._generation += 1

        ws, self._ws = self._ws, None
        task, self._task = self._task, None
        if ws is not None:
            await ws.close()
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("%s: disconnected by request", self.venue.id)

    async def close(self) -> None:
        """disconnect() plus release of the owned HTTP session."""
        await self.disconnect()
        if self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _open(self) -> Any:
        if self._connector is not None:
            return await self._connector(self.venue.ws_url)
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return await self._session.ws_connect(self.venue.ws_url, heartbeat=WS_HEARTBEAT_SEC)

    async def _run(self, generation: int) -> None:
        """One connection lifetime: open, subscribe, read until close or error."""
        name = self.venue.name
        logger.info("%s: connecting to %s", self.venue.id, self.venue.ws_url)

        try:
            ws = await self._open()
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            if generation == self._generation:
                self._on_transport_error(f"Failed to connect to {name}: {exc}")
            return

        if generation != self._generation:
            # Superseded while the socket was opening
            await ws.close()
            return

        self._ws = ws
        failure: str | None = None
        try:
            await ws.send_json(self.adapter.subscribe_message(self.venue.symbol))
            self._set_state(ConnectionState.CONNECTED)
            self.store.clear_error()
            logger.info("%s: connected, subscribed to %s", self.venue.id, self.venue.symbol)

            async for msg in ws:
                if generation != self._generation:
                    break
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    failure = f"Connection error for {name}: {ws.exception()}"
                    break
        except (aiohttp.ClientError, OSError) as exc:
            failure = f"Connection error for {name}: {exc}"
        except Exception as exc:
            logger.exception("%s: unexpected failure in feed loop", self.venue.id)
            failure = f"Connection error for {name}: {exc}"
        finally:
            if self._ws is ws:
                self._ws = None
                await ws.close()

        if generation != self._generation or self._manual_close:
            return
        if failure is not None:
            self._on_transport_error(failure)
        else:
            self._on_transport_closed()

    def _handle_message(self, raw: Any) -> None:
        try:
            snapshot = self.adapter.normalize(raw)
        except Exception:
            logger.exception("%s: error parsing feed message", self.venue.id)
            return
        if snapshot is None:
            logger.debug("%s: ignored non-book message", self.venue.id)
            return
        self.store.record_snapshot(self.venue.id, snapshot)
        if self.store.is_loading and self.store.selected_venue == self.venue.id:
            self.store.set_loading(False)

    def _on_transport_closed(self) -> None:
        self._set_state(ConnectionState.DISCONNECTED)
        self.store.set_loading(False)
        logger.warning(
            "%s: connection closed. Reconnecting in %ss",
            self.venue.id, self._timer.delay_sec,
        )
        self._timer.schedule(self._reconnect)

    def _on_transport_error(self, message: str) -> None:
        self._set_state(ConnectionState.ERROR)
        self.store.record_error(message)
        self.store.set_loading(False)
        logger.error("%s. Reconnecting in %ss", message, self._timer.delay_sec)
        self._timer.schedule(self._reconnect)

    def _reconnect(self) -> None:
        if self._manual_close:
            return
        if self.state == ConnectionState.ERROR:
            self._set_state(ConnectionState.DISCONNECTED)
        self.connect()

    def _set_state(self, state: ConnectionState) -> None:
        self.store.record_connection_state(self.venue.id, state)


class FeedController:
    """
    Keeps exactly one venue live: the store's selected venue.

    This is the orchestration the UI drives; the store itself never connects.
    """

    def __init__(
        self,
        store: MarketStateStore,
        venues: Mapping[str, VenueIdentity] | None = None,
        *,
        connector: Connector | None = None,
        fetcher: SnapshotFetcher | None = None,
        reconnect_delay_sec: float = RECONNECT_DELAY_SEC,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.store = store
        self._session: aiohttp.ClientSession | None = None
        self._fetcher = fetcher
        self._prime_tasks: set[asyncio.Task] = set()
        self.managers: dict[str, ConnectionManager] = {
            venue_id: ConnectionManager(
                venue,
                store,
                connector=connector or self._ws_connect,
                reconnect_delay_sec=reconnect_delay_sec,
                loop=loop,
            )
            for venue_id, venue in (venues if venues is not None else VENUES).items()
        }

    def manager(self, venue_id: str) -> ConnectionManager:
        try:
            return self.managers[venue_id]
        except KeyError:
            raise UnknownVenueError(venue_id) from None

    async def select(self, venue_id: str) -> None:
        """
        Record the selection, tear down every other venue, then connect this one.

        When the store holds no book for the venue yet, a REST fetch runs
        alongside the websocket so the ladder fills before the first frame.
        """
        target = self.manager(venue_id)
        self.store.select_venue(venue_id)
        for other_id, other in self.managers.items():
            if other_id != venue_id and other.is_active:
                await other.disconnect()
        target.connect()

        if self.store.snapshot(venue_id) is None:
            task = asyncio.get_running_loop().create_task(self.prime(venue_id), name=f"prime-{venue_id}")
            self._prime_tasks.add(task)
            task.add_done_callback(self._prime_tasks.discard)

    async def prime(self, venue_id: str) -> bool:
        """
        Seed the store with a REST snapshot. Returns True when one was recorded.

        A book that already arrived over the websocket is newer and is kept.
        """
        venue = self.manager(venue_id).venue
        fetch = self._fetcher or fetch_snapshot
        snapshot = await fetch(await self._get_session(), venue)
        if snapshot is None:
            return False
        if self.store.snapshot(venue_id) is not None:
            logger.debug("%s: stream book already present, REST snapshot dropped", venue_id)
            return False

        self.store.record_snapshot(venue_id, snapshot)
        if self.store.is_loading and self.store.selected_venue == venue_id:
            self.store.set_loading(False)
        logger.info("%s: seeded from REST snapshot", venue_id)
        return True

    async def close(self) -> None:
        pending = list(self._prime_tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for manager in self.managers.values():
            await manager.close()
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _ws_connect(self, url: str) -> aiohttp.ClientWebSocketResponse:
        session = await self._get_session()
        return await session.ws_connect(url, heartbeat=WS_HEARTBEAT_SEC)
