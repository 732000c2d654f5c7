"""
Tests for the order simulation engine.

All scenarios use small hand-built books with hand-calculated expected values.
The market-activity noise is fixed through the injectable source.
"""

import pytest

from conftest import make_snapshot
from dom_sim.engine.simulation import (
    MARKET_ACTIVITY_NOISE_SEC,
    PARTIAL_FILL_PENALTY_SEC,
    estimated_fill_percent,
    market_impact_percent,
    queue_position,
    simulate_order,
    slippage_percent,
    time_to_fill,
    uniform_market_noise,
)
from dom_sim.types import OrderKind, OrderRequest, OrderSide, QueuePosition

LIMIT, MARKET = OrderKind.LIMIT, OrderKind.MARKET
BUY, SELL = OrderSide.BUY, OrderSide.SELL


def no_noise():
    return 0.0


# =============================================================================
# QUEUE POSITION
# =============================================================================

class TestQueuePosition:

    def test_market_order_level_minus_one(self, book):
        assert queue_position(book, OrderRequest(MARKET, BUY, 0.0, 1.0)) == QueuePosition(-1, True)

    def test_buy_at_existing_ask_level(self, book):
        assert queue_position(book, OrderRequest(LIMIT, BUY, 101.0, 1.0)) == QueuePosition(1, True)

    def test_buy_between_levels(self, book):
        assert queue_position(book, OrderRequest(LIMIT, BUY, 100.5, 1.0)) == QueuePosition(1, False)

    def test_buy_above_every_ask(self, book):
        assert queue_position(book, OrderRequest(LIMIT, BUY, 105.0, 1.0)) == QueuePosition(2, False)

    def test_sell_against_bids(self):
        snapshot = make_snapshot(bids=[(99.0, 1.0), (98.0, 1.0)], asks=[(100.0, 1.0)])

        assert queue_position(snapshot, OrderRequest(LIMIT, SELL, 98.0, 1.0)) == QueuePosition(1, True)
        assert queue_position(snapshot, OrderRequest(LIMIT, SELL, 99.5, 1.0)) == QueuePosition(0, False)
        assert queue_position(snapshot, OrderRequest(LIMIT, SELL, 90.0, 1.0)) == QueuePosition(2, False)

    def test_existing_level_uses_exact_equality(self):
        snapshot = make_snapshot(bids=[(0.3, 1.0)], asks=[(0.1 + 0.2, 1.0)])
        # 0.1 + 0.2 != 0.3 in binary floating point
        assert queue_position(snapshot, OrderRequest(LIMIT, BUY, 0.3, 1.0)).is_at_existing_level is False


# =============================================================================
# ESTIMATED FILL
# =============================================================================

class TestEstimatedFill:

    def test_market_order_always_full(self, book):
        assert estimated_fill_percent(book, OrderRequest(MARKET, BUY, 0.0, 1_000.0)) == 100.0

    def test_limit_buy_through_best_ask_fills_fully(self, book):
        assert estimated_fill_percent(book, OrderRequest(LIMIT, BUY, 100.5, 2.0)) == 100.0

    def test_limit_buy_below_best_bid_fills_nothing(self, book):
        assert estimated_fill_percent(book, OrderRequest(LIMIT, BUY, 98.0, 1.0)) == 0.0

    def test_walk_stops_at_first_unfavorable_level(self, book):
        # Only the 100 level (size 2) is <= 100.5
        assert estimated_fill_percent(book, OrderRequest(LIMIT, BUY, 100.5, 4.0)) == pytest.approx(50.0)

    def test_depth_runs_out(self, book):
        # 5 available at or below 101, 10 requested
        assert estimated_fill_percent(book, OrderRequest(LIMIT, BUY, 101.0, 10.0)) == pytest.approx(50.0)

    def test_limit_sell(self):
        snapshot = make_snapshot(bids=[(99.0, 1.0), (98.0, 3.0), (97.0, 10.0)], asks=[(100.0, 1.0)])
        assert estimated_fill_percent(snapshot, OrderRequest(LIMIT, SELL, 98.0, 8.0)) == pytest.approx(50.0)

    def test_non_positive_quantity_is_programmer_error(self, book):
        with pytest.raises(ValueError):
            estimated_fill_percent(book, OrderRequest(LIMIT, BUY, 100.0, 0.0))


# =============================================================================
# IMPACT AND SLIPPAGE
# =============================================================================

class TestImpactAndSlippage:

    def test_market_buy_sweeps_two_levels(self, book):
        request = OrderRequest(MARKET, BUY, 100.0, 4.0)
        # VWAP = (100*2 + 101*2) / 4 = 100.5 -> 0.5%
        assert market_impact_percent(book, request) == pytest.approx(0.5)

    def test_market_sell_within_best_level(self, book):
        assert market_impact_percent(book, OrderRequest(MARKET, SELL, 99.0, 1.0)) == pytest.approx(0.0)

    def test_book_thinner_than_order_spreads_notional_over_requested_quantity(self):
        snapshot = make_snapshot(bids=[(99.0, 1.0)], asks=[(100.0, 1.0)])
        request = OrderRequest(MARKET, BUY, 100.0, 2.0)
        # Only 1 of 2 fills: 100 / 2 = 50 -> -50%
        assert market_impact_percent(snapshot, request) == pytest.approx(-50.0)

    def test_limit_orders_have_no_impact_or_slippage(self, book):
        request = OrderRequest(LIMIT, BUY, 101.0, 4.0)
        assert market_impact_percent(book, request) == 0.0
        assert slippage_percent(book, request) == 0.0

    def test_no_opposing_liquidity(self):
        snapshot = make_snapshot(bids=[(99.0, 1.0)], asks=[])
        request = OrderRequest(MARKET, BUY, 100.0, 1.0)

        assert market_impact_percent(snapshot, request) == 0.0
        assert slippage_percent(snapshot, request) == 0.0

    def test_slippage_uses_reference_price(self, book):
        assert slippage_percent(book, OrderRequest(MARKET, BUY, 102.0, 4.0)) == pytest.approx(2.0)
        assert slippage_percent(book, OrderRequest(MARKET, SELL, 98.01, 1.0)) == pytest.approx(-1.0)


# =============================================================================
# TIME TO FILL
# =============================================================================

class TestTimeToFill:

    def test_market_returns_delay(self):
        request = OrderRequest(MARKET, BUY, 100.0, 1.0, delay_sec=3.5)
        assert time_to_fill(request, 100.0, noise=lambda: 9.0) == 3.5

    def test_full_limit_fill_adds_only_noise(self):
        request = OrderRequest(LIMIT, BUY, 100.0, 1.0, delay_sec=2.0)
        assert time_to_fill(request, 100.0, noise=lambda: 4.0) == pytest.approx(6.0)

    def test_partial_limit_fill_adds_penalty(self):
        request = OrderRequest(LIMIT, BUY, 100.0, 1.0, delay_sec=2.0)
        assert time_to_fill(request, 99.9, noise=no_noise) == pytest.approx(2.0 + PARTIAL_FILL_PENALTY_SEC)

    def test_default_noise_range(self):
        samples = [uniform_market_noise() for _ in range(500)]
        assert all(0.0 <= s < MARKET_ACTIVITY_NOISE_SEC for s in samples)


# =============================================================================
# ORCHESTRATOR
# =============================================================================

def test_simulate_market_order_example(book):
    order = simulate_order(
        book,
        OrderRequest(MARKET, BUY, 100.0, 4.0, delay_sec=1.0),
        noise=no_noise,
        clock=lambda: 1_700_000_000_123,
    )

    assert order.estimated_fill_pct == 100.0
    assert order.market_impact_pct == pytest.approx(0.5)
    assert order.slippage_pct == pytest.approx(0.0)
    assert order.time_to_fill_sec == 1.0
    assert order.queue_position == QueuePosition(-1, True)
    assert order.created_at_ms == 1_700_000_000_123
    assert order.id.startswith("order_1700000000123_")


def test_simulate_limit_order_bundles_all_outputs(book):
    order = simulate_order(
        book,
        OrderRequest(LIMIT, BUY, 100.5, 4.0, delay_sec=2.0),
        noise=lambda: 5.0,
        clock=lambda: 7,
        id_factory=lambda ms: f"fixed-{ms}",
    )

    assert order.id == "fixed-7"
    assert order.kind == LIMIT
    assert order.side == BUY
    assert order.estimated_fill_pct == pytest.approx(50.0)
    assert order.market_impact_pct == 0.0
    assert order.slippage_pct == 0.0
    assert order.time_to_fill_sec == pytest.approx(2.0 + PARTIAL_FILL_PENALTY_SEC + 5.0)
    assert order.queue_position == QueuePosition(1, False)


def test_simulation_never_mutates_snapshot(book):
    before = book
    copy = (tuple(book.bids), tuple(book.asks), book.captured_at_ms, book.symbol)

    simulate_order(book, OrderRequest(MARKET, BUY, 100.0, 4.0), noise=no_noise)
    simulate_order(book, OrderRequest(LIMIT, SELL, 99.0, 5.0), noise=no_noise)

    assert book is before
    assert (book.bids, book.asks, book.captured_at_ms, book.symbol) == copy


def test_order_ids_are_unique(book):
    ids = {simulate_order(book, OrderRequest(MARKET, BUY, 100.0, 1.0), clock=lambda: 1).id for _ in range(50)}
    assert len(ids) == 50
