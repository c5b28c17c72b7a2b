"""
Rule-Based Allocation Engine
Deterministic, side-effect-free portfolio construction.

Receives the asset feed, a monthly target return and a risk level.
Produces an AnalysisResult with:
- picks drawn from category pools according to the risk blueprint
- integer allocations summing to exactly 100
- per-pick rationale, market summary and risk note

This engine is the always-available fallback for the AI engine: for the
same inputs (and the same `now`) it returns the same result.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from portfoy_ai.config.constants import (
    ALLOCATION_BLUEPRINTS,
    DEFAULT_RATIONALE_TEMPLATE,
    MIN_TOTAL_PICKS,
    RATIONALE_TEMPLATES,
    RISK_LABELS,
    RISK_NOTES,
    WEEKS_PER_MONTH,
)
from portfoy_ai.schemas.analysis_output import AnalysisResult, PortfolioRecommendation
from portfoy_ai.schemas.market_data import Asset, investable_assets
from portfoy_ai.tools.allocation_normalizer import normalize_allocations
from portfoy_ai.tools.category_pools import (
    build_category_pools,
    period_return,
    select_from_pool,
    top_gainers,
)
from portfoy_ai.tools.date_utils import format_tr_datetime, local_now

logger = logging.getLogger(__name__)

EMPTY_UNIVERSE_SUMMARY = (
    "## Haftalık Portföy Stratejisi\n\n"
    "Fiyatı bilinen yatırım yapılabilir varlık bulunamadı. "
    "Piyasa verisi yenilendiğinde analizi tekrar çalıştırın."
)

NO_PICKS_SUMMARY = (
    "## Haftalık Portföy Stratejisi\n\n"
    "Risk profiline uygun kategori havuzlarında ve haftalık yükselenler "
    "arasında önerilecek varlık bulunamadı."
)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def run_rule_based_analysis(
    assets: list[Asset],
    target_return: float,
    risk_level: str,
    now: Optional[datetime] = None,
) -> AnalysisResult:
    """
    Build a portfolio from the feed using the risk blueprint.

    Args:
        assets: Current asset feed; unpriced assets are ignored.
        target_return: Monthly target return in percent.
        risk_level: "low" | "medium" | "high".
        now: Timestamp source (defaults to local now).

    Returns:
        AnalysisResult (is_ai_generated=False). An empty universe or zero
        picks yields a valid result with no recommendations.
    """
    if risk_level not in ALLOCATION_BLUEPRINTS:
        raise ValueError(f"Unknown risk level: {risk_level!r}")

    timestamp = format_tr_datetime(now or local_now())
    risk_note = RISK_NOTES[risk_level]

    universe = investable_assets(assets)
    logger.info(
        f"[RuleBased] Running allocation: {len(universe)}/{len(assets)} investable, "
        f"risk={risk_level}, target={target_return}%"
    )

    if not universe:
        logger.warning("[RuleBased] No investable assets, returning empty result")
        return AnalysisResult(
            summary=EMPTY_UNIVERSE_SUMMARY,
            recommendations=[],
            risk_note=risk_note,
            timestamp=timestamp,
        )

    # Step 1: Partition into pools
    pools = build_category_pools(universe)

    # Step 2: Fill blueprint slots; a slot's percentage is split across what was found
    used: set[str] = set()
    picks: list[tuple[Asset, float, Optional[str]]] = []
    for slot in ALLOCATION_BLUEPRINTS[risk_level]:
        chosen = select_from_pool(pools[slot.pool], slot.count, used)
        if not chosen:
            logger.info(f"[RuleBased] Pool '{slot.pool}' empty, {slot.percentage}% forfeited")
            continue
        per_asset = slot.percentage / len(chosen)
        picks.extend((asset, per_asset, slot.pool) for asset in chosen)

    # Step 3: Gainer fallback for thin universes
    if len(picks) < MIN_TOTAL_PICKS:
        extra = top_gainers(universe, used, MIN_TOTAL_PICKS - len(picks))
        if extra:
            logger.info(f"[RuleBased] Gainer fallback added {[a.symbol for a in extra]}")
        picks.extend((asset, 0.0, None) for asset in extra)

    if not picks:
        logger.warning("[RuleBased] No picks available, returning empty result")
        return AnalysisResult(
            summary=NO_PICKS_SUMMARY,
            recommendations=[],
            risk_note=risk_note,
            timestamp=timestamp,
        )

    # Step 4: Integer allocations summing to 100
    allocations = normalize_allocations([weight for _, weight, _ in picks])

    recommendations = [
        PortfolioRecommendation(
            symbol=asset.symbol,
            name=asset.display_name,
            allocation=allocation,
            rationale=_build_rationale(asset, pool),
        )
        for (asset, _, pool), allocation in zip(picks, allocations)
    ]

    summary = _build_summary(universe, recommendations, target_return, risk_level)

    logger.info(
        "[RuleBased] Done: "
        + ", ".join(f"{r.symbol}={r.allocation}%" for r in recommendations)
    )
    return AnalysisResult(
        summary=summary,
        recommendations=recommendations,
        risk_note=risk_note,
        timestamp=timestamp,
        is_ai_generated=False,
    )


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def _build_rationale(asset: Asset, pool: Optional[str]) -> str:
    template = RATIONALE_TEMPLATES.get(pool or "", DEFAULT_RATIONALE_TEMPLATE)
    return template.format(ret=period_return(asset))


def expected_weekly_return(
    universe: list[Asset],
    recommendations: list[PortfolioRecommendation],
) -> float:
    """Allocation-weighted weekly change of the recommended portfolio (%)."""
    by_symbol = {a.symbol: a for a in universe}
    return sum(
        period_return(by_symbol[r.symbol]) * r.allocation / 100
        for r in recommendations
        if r.symbol in by_symbol
    )


def _build_summary(
    universe: list[Asset],
    recommendations: list[PortfolioRecommendation],
    target_return: float,
    risk_level: str,
) -> str:
    ranked = sorted(universe, key=period_return, reverse=True)
    gainers = sum(1 for a in universe if period_return(a) > 0)
    losers = sum(1 for a in universe if period_return(a) < 0)
    best, worst = ranked[0], ranked[-1]
    tone = "pozitif" if gainers > losers else "karışık"

    avg_return = expected_weekly_return(universe, recommendations)
    weekly_target = target_return / WEEKS_PER_MONTH

    summary = (
        f"## Haftalık Portföy Stratejisi\n\n"
        f"**Hedef Getiri:** %{target_return:g} (aylık) | "
        f"**Risk Profili:** {RISK_LABELS[risk_level]}\n\n"
        f"Bu hafta piyasa genelinde {tone} bir seyir gözlemlenmektedir. "
        f"{gainers} enstrüman yükselirken, {losers} enstrüman düşüş göstermiştir.\n\n"
        f"En güçlü performans **{best.symbol}** (%{period_return(best):+.2f}) tarafında "
        f"görülürken, en zayıf performans **{worst.symbol}** "
        f"(%{period_return(worst):+.2f}) olmuştur.\n\n"
        f"Önerilen portföyün ağırlıklı ortalama beklenen haftalık getirisi "
        f"**%{avg_return:.2f}** seviyesindedir."
    )
    if avg_return < weekly_target:
        summary += (
            f" Bu, aylık %{target_return:g} hedefinin haftalık karşılığı olan "
            f"%{weekly_target:.2f} seviyesinin altında kalmaktadır; piyasa koşulları "
            f"göz önünde bulundurulmalıdır."
        )
    return summary
