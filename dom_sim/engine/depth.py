"""
Depth aggregation: cumulative totals, spread, mid, imbalance.

Pure functions over one OrderbookSnapshot. Books are at most DEPTH_LEVELS deep
per side, so everything here is cheap enough to recompute on every render.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

from ..types import (
    AggregatedView,
    DepthVolume,
    Imbalance,
    ImbalanceDirection,
    ImbalanceStrength,
    OrderbookSnapshot,
    PriceLevel,
    Spread,
)

# Imbalance classification thresholds (bid size / ask size)
BUY_THRESHOLD = 1.1
SELL_THRESHOLD = 0.9
STRONG_BUY_THRESHOLD = 1.5
STRONG_SELL_THRESHOLD = 0.5

NEUTRAL_IMBALANCE = Imbalance(0.0, ImbalanceDirection.NEUTRAL, ImbalanceStrength.WEAK)


def _sizes(levels: tuple[PriceLevel, ...]) -> NDArray[np.float64]:
    return np.fromiter((level.size for level in levels), dtype=np.float64, count=len(levels))


def with_cumulative_totals(levels: tuple[PriceLevel, ...]) -> tuple[PriceLevel, ...]:
    """Running size total from the best price outward."""
    totals = np.cumsum(_sizes(levels))
    return tuple(
        PriceLevel(level.price, level.size, float(total))
        for level, total in zip(levels, totals)
    )


def classify_imbalance(ratio: float) -> Imbalance:
    """Map a bid/ask size ratio onto direction and strength. Thresholds are strict."""
    if ratio > BUY_THRESHOLD:
        strength = ImbalanceStrength.STRONG if ratio > STRONG_BUY_THRESHOLD else ImbalanceStrength.MODERATE
        return Imbalance(ratio, ImbalanceDirection.BUY, strength)
    if ratio < SELL_THRESHOLD:
        strength = ImbalanceStrength.STRONG if ratio < STRONG_SELL_THRESHOLD else ImbalanceStrength.MODERATE
        return Imbalance(ratio, ImbalanceDirection.SELL, strength)
    return Imbalance(ratio, ImbalanceDirection.NEUTRAL, ImbalanceStrength.WEAK)


def compute_imbalance(snapshot: OrderbookSnapshot) -> Imbalance:
    """
    Imbalance over all retained levels, not just top of book.

    An empty side (including zero total ask size) is neutral/weak with ratio 0.
    """
    if not snapshot.bids or not snapshot.asks:
        return NEUTRAL_IMBALANCE
    total_bid = float(_sizes(snapshot.bids).sum())
    total_ask = float(_sizes(snapshot.asks).sum())
    if total_ask == 0:
        return NEUTRAL_IMBALANCE
    return classify_imbalance(total_bid / total_ask)


def compute_spread(snapshot: OrderbookSnapshot) -> Spread:
    """Absolute spread and spread as a percentage of the best ask. Zero when a side is empty."""
    best_bid, best_ask = snapshot.best_bid, snapshot.best_ask
    if best_bid is None or best_ask is None:
        return Spread(0.0, 0.0)
    absolute = best_ask.price - best_bid.price
    percent = absolute / best_ask.price * 100 if best_ask.price else 0.0
    return Spread(absolute, percent)


def compute_mid_price(snapshot: OrderbookSnapshot) -> float:
    best_bid, best_ask = snapshot.best_bid, snapshot.best_ask
    if best_bid is None or best_ask is None:
        return 0.0
    return (best_ask.price + best_bid.price) / 2.0


def aggregate(snapshot: OrderbookSnapshot) -> AggregatedView:
    """Build the analyzable view of one snapshot. The input snapshot is not modified."""
    bids = with_cumulative_totals(snapshot.bids)
    asks = with_cumulative_totals(snapshot.asks)
    bid_volume = bids[-1].cumulative_total if bids else 0.0
    ask_volume = asks[-1].cumulative_total if asks else 0.0

    return AggregatedView(
        snapshot=snapshot._replace(bids=bids, asks=asks),
        spread=compute_spread(snapshot),
        mid_price=compute_mid_price(snapshot),
        imbalance=compute_imbalance(snapshot),
        volume=DepthVolume(bid_volume, ask_volume, bid_volume + ask_volume),
    )
