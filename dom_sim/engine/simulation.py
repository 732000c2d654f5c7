"""
Order rehearsal against a single book snapshot.

Every function here is pure except for the market-activity noise term in
time_to_fill(), which comes from an injectable source. Nothing mutates the
snapshot: a simulated order never consumes real liquidity.

Policy:
- Market orders always fill 100% by sweeping the book, queue level -1
- Limit orders have no market impact and no slippage
- Partially filled limit orders wait PARTIAL_FILL_PENALTY_SEC longer
"""

from __future__ import annotations

import random
import time
import uuid
from typing import Callable

from ..types import (
    OrderbookSnapshot,
    OrderKind,
    OrderRequest,
    OrderSide,
    PriceLevel,
    QueuePosition,
    SimulatedOrder,
)

# Extra wait applied to limit orders that cannot fully fill against the book
PARTIAL_FILL_PENALTY_SEC = 30.0

# Width of the uniform [0, width) market-activity noise added to limit fill times
MARKET_ACTIVITY_NOISE_SEC = 10.0

# Returns a noise term in seconds
NoiseSource = Callable[[], float]


def uniform_market_noise() -> float:
    return random.random() * MARKET_ACTIVITY_NOISE_SEC


def _opposing_levels(snapshot: OrderbookSnapshot, side: OrderSide) -> tuple[PriceLevel, ...]:
    """A buy trades against asks, a sell against bids, both best-first."""
    return snapshot.asks if side == OrderSide.BUY else snapshot.bids


def _is_favorable(level_price: float, limit_price: float, side: OrderSide) -> bool:
    if side == OrderSide.BUY:
        return level_price <= limit_price
    return level_price >= limit_price


def queue_position(snapshot: OrderbookSnapshot, request: OrderRequest) -> QueuePosition:
    """
    Where a limit order would sit relative to the opposing side.

    Buy: index of the first ask priced >= limit, else len(asks).
    Sell: index of the first bid priced <= limit, else len(bids).
    Exact float equality decides is_at_existing_level.
    """
    if request.kind == OrderKind.MARKET:
        return QueuePosition(-1, True)

    levels = _opposing_levels(snapshot, request.side)
    for index, level in enumerate(levels):
        if request.side == OrderSide.BUY:
            reached = level.price >= request.price
        else:
            reached = level.price <= request.price
        if reached:
            return QueuePosition(index, level.price == request.price)
    return QueuePosition(len(levels), False)


def estimated_fill_percent(snapshot: OrderbookSnapshot, request: OrderRequest) -> float:
    """
    Share of the order that matches resting liquidity at or better than the limit.

    The walk stops at the first unfavorable level or when depth runs out.
    """
    if request.kind == OrderKind.MARKET:
        return 100.0
    if request.quantity <= 0:
        raise ValueError(f"quantity must be positive, got {request.quantity}")

    remaining = request.quantity
    filled = 0.0
    for level in _opposing_levels(snapshot, request.side):
        if remaining <= 0 or not _is_favorable(level.price, request.price, request.side):
            break
        fill = min(remaining, level.size)
        filled += fill
        remaining -= fill

    return filled / request.quantity * 100


def _sweep(levels: tuple[PriceLevel, ...], quantity: float) -> tuple[float, float]:
    """Consume `quantity` from best price outward. Returns (filled qty, notional)."""
    remaining = quantity
    filled = 0.0
    notional = 0.0
    for level in levels:
        if remaining <= 0:
            break
        fill = min(remaining, level.size)
        filled += fill
        notional += fill * level.price
        remaining -= fill
    return filled, notional


def market_impact_percent(snapshot: OrderbookSnapshot, request: OrderRequest) -> float:
    """
    Deviation of a full sweep's average price from the best opposing price, in percent.

    The notional is spread over the requested quantity, so a book thinner
    than the order pulls the average below the best price. Limit orders: 0.
    Market orders with no opposing liquidity: 0.
    """
    if request.kind == OrderKind.LIMIT:
        return 0.0

    levels = _opposing_levels(snapshot, request.side)
    if not levels or levels[0].price == 0:
        return 0.0

    filled, notional = _sweep(levels, request.quantity)
    if filled == 0:
        return 0.0
    average_price = notional / request.quantity
    best_price = levels[0].price
    return (average_price - best_price) / best_price * 100


def slippage_percent(snapshot: OrderbookSnapshot, request: OrderRequest) -> float:
    """Deviation of the order's reference price from the best opposing price, in percent."""
    if request.kind == OrderKind.LIMIT:
        return 0.0

    levels = _opposing_levels(snapshot, request.side)
    if not levels or levels[0].price == 0:
        return 0.0
    best_price = levels[0].price
    return (request.price - best_price) / best_price * 100


def time_to_fill(
    request: OrderRequest,
    fill_percent: float,
    noise: NoiseSource = uniform_market_noise,
) -> float:
    """
    Seconds until the order is expected to fill.

    Market: the requested delay. Limit: delay + partial-fill penalty + noise.
    """
    if request.kind == OrderKind.MARKET:
        return request.delay_sec
    penalty = PARTIAL_FILL_PENALTY_SEC if fill_percent < 100 else 0.0
    return request.delay_sec + penalty + noise()


def new_order_id(created_at_ms: int) -> str:
    return f"order_{created_at_ms}_{uuid.uuid4().hex[:9]}"


def simulate_order(
    snapshot: OrderbookSnapshot,
    request: OrderRequest,
    *,
    noise: NoiseSource | None = None,
    clock: Callable[[], int] | None = None,
    id_factory: Callable[[int], str] | None = None,
) -> SimulatedOrder:
    """
    Rehearse one validated order request against one snapshot.

    Args:
        snapshot: Book to simulate against (left untouched)
        request: Validated order request
        noise: Market-activity noise source, defaults to uniform [0, 10) seconds
        clock: Milliseconds clock for created_at_ms
        id_factory: Builds the order id from created_at_ms
    """
    created_at_ms = clock() if clock is not None else int(time.time() * 1000)
    fill_pct = estimated_fill_percent(snapshot, request)

    return SimulatedOrder(
        id=(id_factory or new_order_id)(created_at_ms),
        kind=request.kind,
        side=request.side,
        price=request.price,
        quantity=request.quantity,
        delay_sec=request.delay_sec,
        created_at_ms=created_at_ms,
        estimated_fill_pct=fill_pct,
        market_impact_pct=market_impact_percent(snapshot, request),
        slippage_pct=slippage_percent(snapshot, request),
        time_to_fill_sec=time_to_fill(request, fill_pct, noise or uniform_market_noise),
        queue_position=queue_position(snapshot, request),
    )
