"""
Portfolio Diff Engine — Unit Tests
Tests for compute_portfolio_diff() and the previous-recommendation baseline.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from portfoy_ai.config.constants import PREV_RECOMMENDATIONS_KEY
from portfoy_ai.schemas.diff_output import PreviousRecommendation, RecommendationDiff
from portfoy_ai.tools.position_differ import (
    compute_portfolio_diff,
    load_previous_recommendations,
    update_previous_recommendations,
)

from tests.fixtures.conftest import make_snapshot, store


def _prev(*lines: tuple[str, int]) -> list[PreviousRecommendation]:
    return [PreviousRecommendation(symbol=s, name=f"{s} Name", allocation=a) for s, a in lines]


def _snap(*lines: tuple[str, int]):
    return make_snapshot([(s, a, 10.0) for s, a in lines])


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestComputePortfolioDiff:

    @pytest.mark.behavior
    def test_week_over_week(self):
        diff = compute_portfolio_diff(
            _snap(("A", 33), ("B", 40), ("D", 27)),
            _prev(("A", 30), ("B", 40), ("C", 30)),
        )
        assert [(d.symbol, d.action) for d in diff.diffs] == [
            ("D", "NEW"), ("A", "HOLD"), ("B", "HOLD"), ("C", "SELL"),
        ]
        assert diff.new_symbols == ["D"]
        assert diff.removed_symbols == ["C"]
        assert diff.changed_symbols == ["A"]
        assert diff.has_changes is True

    @pytest.mark.behavior
    def test_entry_fields(self):
        diff = compute_portfolio_diff(
            _snap(("A", 33), ("D", 67)),
            _prev(("A", 30), ("C", 70)),
        )
        by_symbol = {d.symbol: d for d in diff.diffs}
        assert by_symbol["D"].prev_allocation is None
        assert by_symbol["D"].allocation_delta is None
        assert by_symbol["A"].prev_allocation == 30
        assert by_symbol["A"].allocation_delta == 3
        assert by_symbol["C"].allocation == 0
        assert by_symbol["C"].prev_allocation == 70
        assert by_symbol["C"].allocation_delta == -70
        assert by_symbol["C"].name == "C Name"

    @pytest.mark.behavior
    def test_below_threshold_is_not_a_change(self):
        diff = compute_portfolio_diff(
            _snap(("A", 52), ("B", 48)),
            _prev(("A", 50), ("B", 50)),
        )
        assert all(d.action == "HOLD" for d in diff.diffs)
        assert diff.changed_symbols == []
        assert diff.has_changes is False

    @pytest.mark.behavior
    def test_threshold_is_inclusive_both_directions(self):
        diff = compute_portfolio_diff(
            _snap(("A", 53), ("B", 47)),
            _prev(("A", 50), ("B", 50)),
        )
        assert diff.changed_symbols == ["A", "B"]
        assert diff.has_changes is True

    @pytest.mark.behavior
    def test_first_run_all_new(self):
        diff = compute_portfolio_diff(_snap(("A", 60), ("B", 40)), [])
        assert [d.action for d in diff.diffs] == ["NEW", "NEW"]
        assert diff.new_symbols == ["A", "B"]
        assert diff.has_changes is True

    @pytest.mark.behavior
    def test_empty_new_set_all_sell(self):
        diff = compute_portfolio_diff(_snap(), _prev(("A", 60), ("B", 40)))
        assert [(d.symbol, d.action, d.allocation) for d in diff.diffs] == [
            ("A", "SELL", 0), ("B", "SELL", 0),
        ]
        assert diff.removed_symbols == ["A", "B"]

    @pytest.mark.behavior
    def test_both_empty(self):
        diff = compute_portfolio_diff(_snap(), [])
        assert diff.diffs == []
        assert diff.has_changes is False

    @pytest.mark.behavior
    def test_union_covered_exactly_once(self):
        diff = compute_portfolio_diff(
            _snap(("A", 20), ("B", 20), ("E", 60)),
            _prev(("B", 25), ("C", 25), ("D", 50)),
        )
        symbols = [d.symbol for d in diff.diffs]
        assert sorted(symbols) == ["A", "B", "C", "D", "E"]
        assert len(symbols) == len(set(symbols))

    @pytest.mark.behavior
    def test_pure_and_repeatable(self):
        snap = _snap(("A", 33), ("B", 67))
        prev = _prev(("A", 30), ("C", 70))
        before = [p.model_dump() for p in prev]
        assert compute_portfolio_diff(snap, prev) == compute_portfolio_diff(snap, prev)
        assert [p.model_dump() for p in prev] == before

    @pytest.mark.schema
    def test_sell_requires_zero_allocation(self):
        with pytest.raises(ValidationError):
            RecommendationDiff(symbol="A", allocation=10, action="SELL")


# ---------------------------------------------------------------------------
# Baseline storage
# ---------------------------------------------------------------------------

class TestPreviousRecommendations:

    @pytest.mark.behavior
    def test_missing_is_empty(self, store):
        assert load_previous_recommendations(store) == []

    @pytest.mark.behavior
    def test_update_then_load(self, store):
        update_previous_recommendations(store, _snap(("A", 60), ("B", 40)))
        loaded = load_previous_recommendations(store)
        assert [(p.symbol, p.name, p.allocation) for p in loaded] == [
            ("A", "A Name", 60), ("B", "B Name", 40),
        ]
        assert store.get(PREV_RECOMMENDATIONS_KEY)[0] == {
            "symbol": "A", "name": "A Name", "allocation": 60,
        }

    @pytest.mark.behavior
    def test_update_overwrites(self, store):
        update_previous_recommendations(store, _snap(("A", 100)))
        update_previous_recommendations(store, _snap(("B", 100)))
        assert [p.symbol for p in load_previous_recommendations(store)] == ["B"]

    @pytest.mark.behavior
    @pytest.mark.parametrize("raw", [
        "not a list",
        {"symbol": "A"},
        [{"symbol": "A"}],
        [{"symbol": "A", "allocation": 500}],
    ])
    def test_corrupt_baseline_is_empty(self, store, raw):
        store.set(PREV_RECOMMENDATIONS_KEY, raw)
        assert load_previous_recommendations(store) == []

    @pytest.mark.behavior
    def test_unparseable_json_is_empty(self, store):
        store.set_raw(PREV_RECOMMENDATIONS_KEY, "[{")
        assert load_previous_recommendations(store) == []

    @pytest.mark.behavior
    def test_diff_does_not_touch_store(self, store):
        update_previous_recommendations(store, _snap(("A", 100)))
        previous = load_previous_recommendations(store)
        compute_portfolio_diff(_snap(("B", 100)), previous)
        assert [p.symbol for p in load_previous_recommendations(store)] == ["A"]
