"""
Market state container.

One instance per application (or per test). Every field is copy-on-write:
a write builds the new value and publishes it with one assignment, so a
reader always sees either the old or the new value of that field, never a
half-built one. There is no cross-field consistency guarantee; consumers
derive everything they need from a single snapshot read.

Thread-safety: writes are serialized by a lock; reads take no lock.
"""

from __future__ import annotations

import logging
import threading
from types import MappingProxyType
from typing import Callable, Mapping

from .config import DEFAULT_VENUE, VENUES, UnknownVenueError
from .engine.depth import NEUTRAL_IMBALANCE, compute_imbalance
from .types import ConnectionState, Imbalance, OrderbookSnapshot, SimulatedOrder, VenueIdentity

logger = logging.getLogger(__name__)

# Called with the name of the field that changed
Listener = Callable[[str], None]


class MarketStateStore:
    """Latest snapshot per venue, connection states, order history, selection, error."""

    def __init__(
        self,
        venues: Mapping[str, VenueIdentity] | None = None,
        selected_venue: str = DEFAULT_VENUE,
    ) -> None:
        self._venues = dict(venues if venues is not None else VENUES)
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

        self._snapshots: Mapping[str, OrderbookSnapshot] = MappingProxyType({})
        self._connection_states: Mapping[str, ConnectionState] = MappingProxyType(
            {venue_id: ConnectionState.DISCONNECTED for venue_id in self._venues}
        )
        self._simulated_orders: tuple[SimulatedOrder, ...] = ()
        self._selected_venue = selected_venue
        self._error: str | None = None
        self._loading = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def venues(self) -> Mapping[str, VenueIdentity]:
        return MappingProxyType(self._venues)

    @property
    def snapshots(self) -> Mapping[str, OrderbookSnapshot]:
        return self._snapshots

    def snapshot(self, venue_id: str) -> OrderbookSnapshot | None:
        return self._snapshots.get(venue_id)

    @property
    def connection_states(self) -> Mapping[str, ConnectionState]:
        return self._connection_states

    def connection_state(self, venue_id: str) -> ConnectionState:
        return self._connection_states.get(venue_id, ConnectionState.DISCONNECTED)

    @property
    def simulated_orders(self) -> tuple[SimulatedOrder, ...]:
        return self._simulated_orders

    @property
    def selected_venue(self) -> str:
        return self._selected_venue

    @property
    def selected_venue_identity(self) -> VenueIdentity | None:
        return self._venues.get(self._selected_venue)

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._loading

    def imbalance(self, venue_id: str) -> Imbalance:
        """Imbalance of the venue's latest snapshot; neutral/weak when there is none."""
        snapshot = self._snapshots.get(venue_id)
        if snapshot is None:
            return NEUTRAL_IMBALANCE
        return compute_imbalance(snapshot)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_snapshot(self, venue_id: str, snapshot: OrderbookSnapshot) -> None:
        """Replace the venue's snapshot wholesale."""
        with self._lock:
            self._snapshots = MappingProxyType({**self._snapshots, venue_id: snapshot})
        self._notify("snapshots")

    def record_connection_state(self, venue_id: str, state: ConnectionState) -> None:
        with self._lock:
            previous = self._connection_states.get(venue_id)
            self._connection_states = MappingProxyType({**self._connection_states, venue_id: state})
        if previous != state:
            logger.info("%s: %s -> %s", venue_id, getattr(previous, "value", None), state.value)
        self._notify("connection_states")

    def record_error(self, message: str | None) -> None:
        """Keep only the most recent error; None clears it."""
        with self._lock:
            self._error = message
        self._notify("error")

    def clear_error(self) -> None:
        self.record_error(None)

    def append_simulated_order(self, order: SimulatedOrder) -> None:
        """Append to the history. No dedup, no cap."""
        with self._lock:
            self._simulated_orders = (*self._simulated_orders, order)
        self._notify("simulated_orders")

    def remove_simulated_order(self, order_id: str) -> None:
        with self._lock:
            self._simulated_orders = tuple(o for o in self._simulated_orders if o.id != order_id)
        self._notify("simulated_orders")

    def select_venue(self, venue_id: str) -> None:
        """
        Record the selection only.

        Connecting to the newly selected venue is the caller's job (see FeedController).
        """
        if venue_id not in self._venues:
            raise UnknownVenueError(venue_id)
        with self._lock:
            self._selected_venue = venue_id
        self._notify("selected_venue")

    def set_loading(self, loading: bool) -> None:
        with self._lock:
            self._loading = loading
        self._notify("is_loading")

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unregisters it."""
        with self._lock:
            self._listeners = [*self._listeners, listener]

        def unsubscribe() -> None:
            with self._lock:
                self._listeners = [l for l in self._listeners if l is not listener]

        return unsubscribe

    def _notify(self, field: str) -> None:
        for listener in self._listeners:
            listener(field)
