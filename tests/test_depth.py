"""
Tests for depth aggregation: cumulative totals, spread, mid and imbalance.
"""

import pytest

from conftest import make_snapshot
from dom_sim.engine.depth import aggregate, classify_imbalance, compute_imbalance
from dom_sim.types import ImbalanceDirection as D
from dom_sim.types import ImbalanceStrength as S


def test_cumulative_totals_run_from_best_price_outward(book):
    view = aggregate(book)

    assert [l.cumulative_total for l in view.snapshot.asks] == [2.0, 5.0]
    assert [l.cumulative_total for l in view.snapshot.bids] == [5.0]


def test_cumulative_totals_monotonic_and_end_at_side_total():
    snapshot = make_snapshot(
        bids=[(99.0, 0.3), (98.5, 1.7), (98.0, 0.0001), (97.0, 12.0)],
        asks=[(100.0, 4.2), (100.5, 0.8), (101.0, 3.3)],
    )
    view = aggregate(snapshot)

    for side, raw in ((view.snapshot.bids, snapshot.bids), (view.snapshot.asks, snapshot.asks)):
        totals = [l.cumulative_total for l in side]
        assert all(a <= b for a, b in zip(totals, totals[1:]))
        assert totals[-1] == pytest.approx(sum(l.size for l in raw))


def test_aggregate_leaves_input_snapshot_untouched(book):
    aggregate(book)
    assert all(l.cumulative_total == 0.0 for l in book.asks + book.bids)


def test_spread_and_mid(book):
    view = aggregate(book)

    assert view.spread.absolute == pytest.approx(1.0)
    assert view.spread.percent == pytest.approx(1.0)  # 1 / 100 * 100
    assert view.mid_price == pytest.approx(99.5)


def test_volume_totals(book):
    view = aggregate(book)
    assert view.volume.bids == pytest.approx(5.0)
    assert view.volume.asks == pytest.approx(5.0)
    assert view.volume.total == pytest.approx(10.0)


@pytest.mark.parametrize("bids, asks", [
    ([], [(100.0, 1.0)]),
    ([(99.0, 1.0)], []),
    ([], []),
])
def test_empty_side_reports_zero_not_error(bids, asks):
    view = aggregate(make_snapshot(bids=bids, asks=asks))

    assert view.spread.absolute == 0.0
    assert view.spread.percent == 0.0
    assert view.mid_price == 0.0
    assert view.imbalance.direction == D.NEUTRAL
    assert view.imbalance.strength == S.WEAK


def test_imbalance_uses_all_levels_not_top_of_book():
    # Top of book favors asks, full depth favors bids (12 / 4 = 3)
    snapshot = make_snapshot(
        bids=[(99.0, 1.0), (98.0, 11.0)],
        asks=[(100.0, 3.0), (101.0, 1.0)],
    )
    imbalance = compute_imbalance(snapshot)

    assert imbalance.ratio == pytest.approx(3.0)
    assert imbalance.direction == D.BUY
    assert imbalance.strength == S.STRONG


def test_zero_total_ask_size_is_neutral():
    # Zero-size levels never come out of an adapter, but hand-built snapshots can hold them
    snapshot = make_snapshot(bids=[(99.0, 1.0)], asks=[(100.0, 0.0)])
    imbalance = compute_imbalance(snapshot)

    assert imbalance.direction == D.NEUTRAL
    assert imbalance.strength == S.WEAK
    assert imbalance.ratio == 0.0


@pytest.mark.parametrize("ratio, direction, strength", [
    (1.0, D.NEUTRAL, S.WEAK),
    (1.1, D.NEUTRAL, S.WEAK),
    (1.1000001, D.BUY, S.MODERATE),
    (1.5, D.BUY, S.MODERATE),
    (1.5000001, D.BUY, S.STRONG),
    (0.9, D.NEUTRAL, S.WEAK),
    (0.8999999, D.SELL, S.MODERATE),
    (0.5, D.SELL, S.MODERATE),
    (0.4999999, D.SELL, S.STRONG),
    (0.0, D.SELL, S.STRONG),
])
def test_imbalance_thresholds(ratio, direction, strength):
    imbalance = classify_imbalance(ratio)

    assert imbalance.ratio == ratio
    assert imbalance.direction == direction
    assert imbalance.strength == strength
