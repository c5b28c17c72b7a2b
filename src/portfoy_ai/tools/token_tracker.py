"""Token usage tracker for the engine's LLM calls.

Captures input/output token counts from anthropic SDK responses and provides
per-function summaries and overall totals with cost estimates.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pricing (USD per million tokens), matched by model-id prefix
# ---------------------------------------------------------------------------
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-haiku-4": (1.00, 5.00),
    "claude-haiku": (0.80, 4.00),
    "claude-sonnet": (3.00, 15.00),
    "claude-opus": (15.00, 75.00),
}
DEFAULT_PRICING = MODEL_PRICING["claude-haiku-4"]


def _pricing_for(model: str) -> tuple[float, float]:
    # Longest matching prefix wins ("claude-haiku-4-5-..." before "claude-haiku")
    for prefix in sorted(MODEL_PRICING, key=len, reverse=True):
        if model.startswith(prefix):
            return MODEL_PRICING[prefix]
    return DEFAULT_PRICING


def compute_cost(input_tokens: int, output_tokens: int, model: str) -> float:
    """Cost in USD for a token count."""
    in_rate, out_rate = _pricing_for(model)
    return (input_tokens * in_rate + output_tokens * out_rate) / 1_000_000


class TokenTracker:
    """Accumulates token usage records from LLM calls."""

    def __init__(self) -> None:
        self._records: list[dict[str, Any]] = []

    def track(self, function_name: str, response: Any, model: str) -> None:
        """Record usage from an anthropic response; responses without usage are ignored."""
        usage = getattr(response, "usage", None)
        try:
            input_tokens = int(usage.input_tokens)
            output_tokens = int(usage.output_tokens)
        except (AttributeError, TypeError, ValueError):
            logger.debug(f"[Tokens] No usage on response from {function_name}")
            return

        self._records.append({
            "function": function_name,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "model": model,
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        })

    def get_summary(self) -> dict[str, Any]:
        """Overall totals and estimated cost."""
        total_input = sum(r["input_tokens"] for r in self._records)
        total_output = sum(r["output_tokens"] for r in self._records)
        cost = sum(
            compute_cost(r["input_tokens"], r["output_tokens"], r["model"])
            for r in self._records
        )
        return {
            "total_input_tokens": total_input,
            "total_output_tokens": total_output,
            "total_tokens": total_input + total_output,
            "estimated_cost_usd": round(cost, 4),
            "num_calls": len(self._records),
        }

    def get_by_function(self) -> list[dict[str, Any]]:
        """Per-function totals, sorted by function name."""
        groups: dict[str, dict[str, Any]] = {}
        for r in self._records:
            g = groups.setdefault(r["function"], {
                "function": r["function"],
                "input_tokens": 0,
                "output_tokens": 0,
                "cost_usd": 0.0,
                "calls": 0,
            })
            g["input_tokens"] += r["input_tokens"]
            g["output_tokens"] += r["output_tokens"]
            g["cost_usd"] += compute_cost(r["input_tokens"], r["output_tokens"], r["model"])
            g["calls"] += 1

        result = []
        for g in sorted(groups.values(), key=lambda x: x["function"]):
            g["total_tokens"] = g["input_tokens"] + g["output_tokens"]
            g["cost_usd"] = round(g["cost_usd"], 4)
            result.append(g)
        return result

    @property
    def has_records(self) -> bool:
        return len(self._records) > 0

    def reset(self) -> None:
        """Clear all records (useful for testing)."""
        self._records.clear()


# ---------------------------------------------------------------------------
# Module-level singleton and convenience function
# ---------------------------------------------------------------------------
tracker = TokenTracker()


def track(function_name: str, response: Any, model: str) -> None:
    """Convenience wrapper around the global tracker."""
    tracker.track(function_name, response, model)
