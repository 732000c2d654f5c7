#!/usr/bin/env python3
"""
Micro-benchmark for DOM Simulator hot paths.

Tests:
1. Feed message normalization throughput (per venue)
2. Depth aggregation speed
3. Order simulation speed

Usage:
    python -m dom_sim.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

import orjson

from .config import DEPTH_LEVELS
from .datafeed.adapters import get_adapter
from .engine.depth import aggregate
from .engine.simulation import simulate_order
from .types import OrderbookSnapshot, OrderKind, OrderRequest, OrderSide, PriceLevel


def generate_mock_okx_message(base_price: float = 60000.0, levels: int = 400) -> bytes:
    """Generate a mock OKX books message with string-encoded levels."""
    tick_size = 0.1

    bids = []
    asks = []

    for i in range(levels):
        bid_price = base_price - (i + 1) * tick_size
        ask_price = base_price + (i + 1) * tick_size

        bids.append([f"{bid_price:.1f}", f"{random.uniform(0.01, 5):.4f}", "0", "3"])
        asks.append([f"{ask_price:.1f}", f"{random.uniform(0.01, 5):.4f}", "0", "3"])

    return orjson.dumps({
        "arg": {"channel": "books", "instId": "BTC-USDT"},
        "action": "snapshot",
        "data": [{"bids": bids, "asks": asks, "ts": str(int(time.time() * 1000))}],
    })


def generate_mock_deribit_message(base_price: float = 60000.0, levels: int = 400) -> bytes:
    """Generate a mock Deribit book message with native numbers."""
    bids = [[base_price - (i + 1) * 0.5, random.uniform(10, 5000)] for i in range(levels)]
    asks = [[base_price + (i + 1) * 0.5, random.uniform(10, 5000)] for i in range(levels)]
    return orjson.dumps({
        "jsonrpc": "2.0",
        "method": "subscription",
        "params": {
            "channel": "book.BTC-PERPETUAL.100ms",
            "data": {"instrument_name": "BTC-PERPETUAL", "bids": bids, "asks": asks},
        },
    })


def generate_mock_snapshot(base_price: float = 60000.0) -> OrderbookSnapshot:
    bids = tuple(
        PriceLevel(base_price - (i + 1) * 0.1, random.uniform(0.01, 5)) for i in range(DEPTH_LEVELS)
    )
    asks = tuple(
        PriceLevel(base_price + (i + 1) * 0.1, random.uniform(0.01, 5)) for i in range(DEPTH_LEVELS)
    )
    return OrderbookSnapshot(bids, asks, int(time.time() * 1000), "BTC-USDT")


def benchmark_normalize(venue_id: str, message: bytes, iterations: int = 2000) -> None:
    """Benchmark raw message -> snapshot throughput."""
    print(f"\n=== Normalize Benchmark ({venue_id}) ===")

    adapter = get_adapter(venue_id)

    # Warm up
    for _ in range(50):
        adapter.normalize(message)

    start = time.perf_counter()
    for _ in range(iterations):
        adapter.normalize(message)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Messages normalized: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} msgs/sec")
    print(f"  Per message: {elapsed/iterations*1_000_000:.1f}µs")


def benchmark_aggregate(iterations: int = 5000) -> None:
    """Benchmark depth aggregation."""
    print("\n=== Depth Aggregation Benchmark ===")

    snapshot = generate_mock_snapshot()

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        aggregate(snapshot)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1_000_000
    std_time = stdev(times) * 1_000_000

    print(f"  Iterations: {iterations}")
    print(f"  Avg time: {avg_time:.1f}µs")
    print(f"  Std dev: {std_time:.1f}µs")


def benchmark_simulation(iterations: int = 5000) -> None:
    """Benchmark full order simulation (limit and market mix)."""
    print("\n=== Order Simulation Benchmark ===")

    snapshot = generate_mock_snapshot()
    requests = [
        OrderRequest(
            kind=random.choice(list(OrderKind)),
            side=random.choice(list(OrderSide)),
            price=60000.0 + random.uniform(-2, 2),
            quantity=random.uniform(0.1, 30),
            delay_sec=random.uniform(0, 5),
        )
        for _ in range(iterations)
    ]

    start = time.perf_counter()
    for request in requests:
        simulate_order(snapshot, request)
    elapsed = time.perf_counter() - start

    print(f"  Orders simulated: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Per order: {elapsed/iterations*1_000_000:.1f}µs")


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("DOM Simulator Performance Benchmark")
    print("=" * 60)

    benchmark_normalize("okx", generate_mock_okx_message())
    benchmark_normalize("deribit", generate_mock_deribit_message())
    benchmark_aggregate()
    benchmark_simulation()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
