"""
Analysis Cycle Orchestrator
One user-triggered (or scheduled) analysis, end to end:

1. measure the last stored snapshot against the current feed
2. build technical signals from optional price history
3. run the AI engine against a deadline, falling back to the rule-based engine
4. build and save the new snapshot
5. diff it against the previous recommendation, then advance that baseline

The AI engine's two boundary errors (invalid credential, rate limit) do not
abort the cycle: the rule-based result is used and `ai_error` tells the
caller to prompt for a key or back off.
"""

from __future__ import annotations

import concurrent.futures
import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from portfoy_ai.agents.ai_allocator import run_ai_analysis
from portfoy_ai.agents.rule_based_allocator import run_rule_based_analysis
from portfoy_ai.config.constants import DEFAULT_AI_TIMEOUT
from portfoy_ai.exceptions import InvalidCredentialError, RateLimitExceededError
from portfoy_ai.schemas.analysis_output import AnalysisResult
from portfoy_ai.schemas.cycle_output import AnalysisCycleOutput
from portfoy_ai.schemas.market_data import Asset
from portfoy_ai.tools.api_key_store import resolve_claude_key
from portfoy_ai.tools.date_utils import local_now
from portfoy_ai.tools.kv_store import KeyValueStore
from portfoy_ai.tools.position_differ import (
    compute_portfolio_diff,
    load_previous_recommendations,
    update_previous_recommendations,
)
from portfoy_ai.tools.snapshot_store import (
    build_snapshot_from_analysis,
    calculate_performance,
    load_last_snapshot,
    save_snapshot,
)
from portfoy_ai.tools.technical_engine import build_technical_signals

logger = logging.getLogger(__name__)


def run_analysis_cycle(
    assets: list[Asset],
    target_return: float,
    risk_level: str,
    store: KeyValueStore,
    price_history: Optional[Mapping[str, Sequence[float]]] = None,
    macro_context: Optional[str] = None,
    ai_timeout: float = DEFAULT_AI_TIMEOUT,
    data_source: str = "live",
    client: Optional[Any] = None,
    use_ai: bool = True,
    now: Optional[datetime] = None,
) -> AnalysisCycleOutput:
    """
    Run one complete analysis cycle against `store`.

    Args:
        assets: Current asset feed.
        target_return: Monthly target return in percent.
        risk_level: "low" | "medium" | "high".
        store: Persistence for snapshots, the diff baseline and API keys.
        price_history: Optional {symbol: daily closes, oldest first}.
        macro_context: Optional macro commentary for the AI prompt.
        ai_timeout: Seconds to wait for the AI engine before falling back.
        data_source: "live" or "mock", recorded on the snapshot.
        client: Pre-built anthropic-compatible client (tests inject a mock).
        use_ai: False skips the AI engine entirely.
        now: Clock for timestamps and performance age.

    Returns:
        AnalysisCycleOutput
    """
    now = now or local_now()
    logger.info(f"[Cycle] Starting analysis: {len(assets)} assets, risk={risk_level}")

    # Step 1: Performance of the previous snapshot
    previous_snapshot = load_last_snapshot(store)
    previous_performance = None
    if previous_snapshot is not None:
        previous_performance = calculate_performance(previous_snapshot, assets, now=now)
        logger.info(
            f"[Cycle] Previous snapshot {previous_snapshot.id}: "
            f"P&L {previous_performance.total_pnl:+.2f}% over {previous_performance.days_since} days"
        )

    # Step 2: Technical signals
    signals = build_technical_signals(dict(price_history)) if price_history else []

    # Step 3: Allocation
    ai_error = None
    if use_ai:
        analysis, ai_error = _run_ai_with_deadline(
            assets, target_return, risk_level, store,
            signals=signals,
            macro_context=macro_context,
            ai_timeout=ai_timeout,
            client=client,
            now=now,
        )
    else:
        analysis = run_rule_based_analysis(assets, target_return, risk_level, now=now)

    # Step 4: Snapshot
    snapshot = build_snapshot_from_analysis(
        analysis, assets, target_return, risk_level, data_source=data_source, now=now,
    )
    save_snapshot(store, snapshot)

    # Step 5: Diff, then advance the baseline
    diff = compute_portfolio_diff(snapshot, load_previous_recommendations(store))
    update_previous_recommendations(store, snapshot)

    logger.info(
        f"[Cycle] Done: ai={analysis.is_ai_generated}, ai_error={ai_error}, "
        f"lines={len(snapshot.recommendations)}, changes={diff.has_changes}"
    )
    return AnalysisCycleOutput(
        analysis=analysis,
        snapshot=snapshot,
        diff=diff,
        previous_performance=previous_performance,
        ai_error=ai_error,
        technical_signal_count=len(signals),
        macro_context_used=bool(macro_context and macro_context.strip()),
    )


def _run_ai_with_deadline(
    assets: list[Asset],
    target_return: float,
    risk_level: str,
    store: KeyValueStore,
    signals: list,
    macro_context: Optional[str],
    ai_timeout: float,
    client: Optional[Any],
    now: datetime,
) -> tuple[AnalysisResult, Optional[str]]:
    """AI engine raced against `ai_timeout`; returns (result, ai_error)."""
    api_key = None if client is not None else resolve_claude_key(store)

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = executor.submit(
        run_ai_analysis,
        assets,
        target_return,
        risk_level,
        technical_signals=signals or None,
        macro_context=macro_context,
        api_key=api_key,
        client=client,
        now=now,
    )
    try:
        return future.result(timeout=ai_timeout), None
    except concurrent.futures.TimeoutError:
        logger.warning(f"[Cycle] AI engine exceeded {ai_timeout:.0f}s, using rule-based result")
        error = "timeout"
    except InvalidCredentialError as e:
        logger.warning(f"[Cycle] {e.error_code}: using rule-based result, key must be re-entered")
        error = "invalid_credential"
    except RateLimitExceededError as e:
        logger.warning(f"[Cycle] {e.error_code}: using rule-based result")
        error = "rate_limited"
    finally:
        # A timed-out request keeps running in its thread; its result is discarded
        executor.shutdown(wait=False, cancel_futures=True)

    return run_rule_based_analysis(assets, target_return, risk_level, now=now), error
