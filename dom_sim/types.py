"""
Data types for DOM Simulator.

Notes:
- Using NamedTuple for immutable, memory-efficient structures
- Snapshots hold tuples, never lists, so a stored snapshot cannot be patched in place
"""

from enum import Enum
from typing import NamedTuple


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class OrderKind(str, Enum):
    LIMIT = "limit"
    MARKET = "market"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class ImbalanceDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"


class ImbalanceStrength(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


class PriceLevel(NamedTuple):
    """Single price level on one side of the book."""
    price: float
    size: float
    cumulative_total: float = 0.0  # Filled in by the depth aggregator only


class OrderbookSnapshot(NamedTuple):
    """
    One venue's book at a point in time.

    bids: best (highest) first, asks: best (lowest) first.
    """
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]
    captured_at_ms: int
    symbol: str

    @property
    def best_bid(self) -> PriceLevel | None:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> PriceLevel | None:
        return self.asks[0] if self.asks else None


class VenueIdentity(NamedTuple):
    """Static venue definition."""
    id: str
    name: str
    ws_url: str
    rest_url: str
    symbol: str


class OrderRequest(NamedTuple):
    """Hypothetical order as entered by the user, already validated."""
    kind: OrderKind
    side: OrderSide
    price: float
    quantity: float
    delay_sec: float = 0.0


class QueuePosition(NamedTuple):
    level: int                   # -1 for market orders
    is_at_existing_level: bool


class SimulatedOrder(NamedTuple):
    """Result of rehearsing one OrderRequest against one snapshot."""
    id: str
    kind: OrderKind
    side: OrderSide
    price: float
    quantity: float
    delay_sec: float
    created_at_ms: int
    estimated_fill_pct: float
    market_impact_pct: float
    slippage_pct: float
    time_to_fill_sec: float
    queue_position: QueuePosition


class Imbalance(NamedTuple):
    ratio: float
    direction: ImbalanceDirection
    strength: ImbalanceStrength


class Spread(NamedTuple):
    absolute: float
    percent: float


class DepthVolume(NamedTuple):
    bids: float
    asks: float
    total: float


class AggregatedView(NamedTuple):
    """
    Analyzable view of one snapshot.

    The embedded snapshot carries cumulative totals on every level.
    """
    snapshot: OrderbookSnapshot
    spread: Spread
    mid_price: float
    imbalance: Imbalance
    volume: DepthVolume
