"""
Token Tracker — Unit Tests
Tests for the prefix-priced cost table, compute_cost(), TokenTracker
aggregation and the module-level tracker the AI engine reports to.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from portfoy_ai.agents.ai_allocator import run_ai_analysis
from portfoy_ai.config.constants import DEFAULT_MODEL
from portfoy_ai.tools import token_tracker
from portfoy_ai.tools.token_tracker import (
    DEFAULT_PRICING,
    MODEL_PRICING,
    TokenTracker,
    _pricing_for,
    compute_cost,
)

from tests.fixtures.conftest import FIXED_NOW, ai_json, mock_client, mock_response, scenario_a_assets

_SONNET = "claude-sonnet-4-5"
_OPUS = "claude-opus-4-1"


def _usage(input_tokens, output_tokens) -> SimpleNamespace:
    return SimpleNamespace(
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


@pytest.fixture
def fresh_tracker(monkeypatch):
    """Swap the module-level tracker for an empty one."""
    t = TokenTracker()
    monkeypatch.setattr(token_tracker, "tracker", t)
    return t


# ---------------------------------------------------------------------------
# Pricing table
# ---------------------------------------------------------------------------

class TestPricingTable:

    @pytest.mark.schema
    @pytest.mark.parametrize("model,rates", [
        (DEFAULT_MODEL, (1.00, 5.00)),
        ("claude-haiku-4-0", (1.00, 5.00)),
        ("claude-haiku-3-20240307", (0.80, 4.00)),
        (_SONNET, (3.00, 15.00)),
        ("claude-sonnet-3-7", (3.00, 15.00)),
        (_OPUS, (15.00, 75.00)),
    ])
    def test_rates_by_prefix(self, model, rates):
        assert _pricing_for(model) == rates

    @pytest.mark.schema
    def test_longest_prefix_wins(self):
        # both "claude-haiku" and "claude-haiku-4" match
        assert _pricing_for("claude-haiku-4-5") == MODEL_PRICING["claude-haiku-4"]
        assert _pricing_for("claude-haiku-4-5") != MODEL_PRICING["claude-haiku"]

    @pytest.mark.schema
    def test_every_prefix_prices_itself(self):
        for prefix, rates in MODEL_PRICING.items():
            assert _pricing_for(prefix) == rates

    @pytest.mark.schema
    @pytest.mark.parametrize("model", ["", "gpt-4o", "proxy/claude-sonnet-4-5", "Claude-Opus-4"])
    def test_unmatched_model_uses_default(self, model):
        assert _pricing_for(model) == DEFAULT_PRICING

    @pytest.mark.schema
    def test_default_is_the_default_model_rate(self):
        assert DEFAULT_PRICING == _pricing_for(DEFAULT_MODEL)


class TestComputeCost:

    @pytest.mark.schema
    def test_rates_are_per_million_tokens(self):
        assert compute_cost(1_000_000, 0, _OPUS) == pytest.approx(15.00)
        assert compute_cost(0, 1_000_000, _OPUS) == pytest.approx(75.00)

    @pytest.mark.schema
    def test_input_and_output_priced_separately(self):
        assert compute_cost(1200, 300, _SONNET) == pytest.approx((1200 * 3.00 + 300 * 15.00) / 1e6)

    @pytest.mark.schema
    def test_zero_tokens_cost_nothing(self):
        assert compute_cost(0, 0, "unknown-model") == 0.0


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

class TestTokenTracker:

    @pytest.mark.behavior
    def test_empty_tracker(self):
        t = TokenTracker()
        assert t.has_records is False
        assert t.get_by_function() == []
        assert t.get_summary() == {
            "total_input_tokens": 0,
            "total_output_tokens": 0,
            "total_tokens": 0,
            "estimated_cost_usd": 0,
            "num_calls": 0,
        }

    @pytest.mark.behavior
    def test_summary_prices_each_call_at_its_own_model(self):
        t = TokenTracker()
        t.track("run_ai_analysis", _usage(100_000, 10_000), DEFAULT_MODEL)
        t.track("run_ai_analysis", _usage(100_000, 10_000), _OPUS)
        summary = t.get_summary()
        assert summary["total_tokens"] == 220_000
        assert summary["num_calls"] == 2
        # haiku-4: 0.1 + 0.05; opus: 1.5 + 0.75
        assert summary["estimated_cost_usd"] == pytest.approx(2.4)

    @pytest.mark.behavior
    def test_by_function_groups_and_sorts(self):
        t = TokenTracker()
        t.track("run_ai_analysis", _usage(1000, 200), DEFAULT_MODEL)
        t.track("macro_summary", _usage(4000, 1000), _SONNET)
        t.track("run_ai_analysis", _usage(1000, 200), _SONNET)

        macro, ai = t.get_by_function()
        assert macro["function"] == "macro_summary"
        assert macro["cost_usd"] == round(compute_cost(4000, 1000, _SONNET), 4)
        assert ai["calls"] == 2
        assert ai["total_tokens"] == 2400
        assert ai["cost_usd"] == round(
            compute_cost(1000, 200, DEFAULT_MODEL) + compute_cost(1000, 200, _SONNET), 4,
        )

    @pytest.mark.behavior
    @pytest.mark.parametrize("response", [
        None,
        SimpleNamespace(),
        SimpleNamespace(usage=None),
        _usage(None, None),
        _usage("many", 10),
    ])
    def test_responses_without_usable_counts_ignored(self, response):
        t = TokenTracker()
        t.track("run_ai_analysis", response, DEFAULT_MODEL)
        assert t.has_records is False

    @pytest.mark.behavior
    def test_reset(self):
        t = TokenTracker()
        t.track("run_ai_analysis", _usage(10, 10), DEFAULT_MODEL)
        t.reset()
        assert t.has_records is False
        assert t.get_summary()["num_calls"] == 0


# ---------------------------------------------------------------------------
# Module-level tracker
# ---------------------------------------------------------------------------

class TestModuleTracker:

    @pytest.mark.behavior
    def test_track_records_on_module_tracker(self, fresh_tracker):
        token_tracker.track("run_ai_analysis", mock_response("x"), _SONNET)
        [row] = fresh_tracker.get_by_function()
        assert row["total_tokens"] == 1500
        assert row["cost_usd"] == round(compute_cost(1200, 300, _SONNET), 4)

    @pytest.mark.integration
    def test_ai_engine_reports_usage(self, fresh_tracker):
        recs = [{"symbol": "THYAO", "allocation": 60}, {"symbol": "BTC", "allocation": 40}]
        run_ai_analysis(
            scenario_a_assets(), 3.0, "medium",
            client=mock_client(ai_json(recs)), model=_OPUS, now=FIXED_NOW,
        )
        summary = fresh_tracker.get_summary()
        assert summary["num_calls"] == 1
        assert summary["estimated_cost_usd"] == round(compute_cost(1200, 300, _OPUS), 4)

    @pytest.mark.integration
    def test_fallback_before_transport_records_nothing(self, fresh_tracker):
        run_ai_analysis([], 3.0, "medium", client=mock_client("{}"), now=FIXED_NOW)
        assert fresh_tracker.has_records is False
