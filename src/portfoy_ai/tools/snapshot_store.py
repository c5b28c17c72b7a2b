"""
Snapshot & Performance Tracker
Persist each recommendation as a timestamped snapshot with entry prices and
later measure it against the current feed.

Functions:
- build_snapshot_from_analysis(): lossy join of recommendations with prices
- save_snapshot() / load_all_snapshots() / load_last_snapshot(): bounded
  FIFO history behind a KeyValueStore
- calculate_performance(): weighted P&L against current prices

Snapshots are never mutated after creation.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from portfoy_ai.config.constants import MAX_SNAPSHOTS, SNAPSHOT_KEY
from portfoy_ai.schemas.analysis_output import AnalysisResult
from portfoy_ai.schemas.market_data import Asset
from portfoy_ai.schemas.snapshot_output import (
    PerformanceMetric,
    PerformanceResult,
    PortfolioSnapshot,
    SnapshotRecommendation,
)
from portfoy_ai.tools.date_utils import ensure_aware, format_tr_datetime, local_now, parse_iso
from portfoy_ai.tools.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 60 * 60 * 24


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

def load_all_snapshots(store: KeyValueStore) -> list[PortfolioSnapshot]:
    """Oldest first. Corrupt history reads as empty; invalid entries are skipped."""
    raw = store.get(SNAPSHOT_KEY)
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning(f"[Snapshot] '{SNAPSHOT_KEY}' is not a list, treating history as empty")
        return []

    snapshots: list[PortfolioSnapshot] = []
    for i, item in enumerate(raw):
        try:
            snapshots.append(PortfolioSnapshot.model_validate(item))
        except ValidationError as e:
            logger.warning(f"[Snapshot] Skipping invalid stored snapshot #{i}: {e.error_count()} errors")
    return snapshots


def load_last_snapshot(store: KeyValueStore) -> Optional[PortfolioSnapshot]:
    snapshots = load_all_snapshots(store)
    return snapshots[-1] if snapshots else None


def save_snapshot(store: KeyValueStore, snapshot: PortfolioSnapshot) -> None:
    """Append to history, keeping only the MAX_SNAPSHOTS most recent (oldest evicted)."""
    history = load_all_snapshots(store)
    history.append(snapshot)
    trimmed = history[-MAX_SNAPSHOTS:]
    evicted = len(history) - len(trimmed)
    store.set(SNAPSHOT_KEY, [s.model_dump(mode="json") for s in trimmed])
    logger.info(
        f"[Snapshot] Saved {snapshot.id} ({len(snapshot.recommendations)} lines), "
        f"history={len(trimmed)}" + (f", evicted={evicted}" if evicted else "")
    )


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------

def _snapshot_id(now: datetime) -> str:
    millis = int(now.timestamp() * 1000)
    return f"{millis}-{uuid.uuid4().hex[:6]}"


def build_snapshot_from_analysis(
    analysis: AnalysisResult,
    assets: list[Asset],
    target_return: float,
    risk_level: str,
    data_source: str = "live",
    now: Optional[datetime] = None,
) -> PortfolioSnapshot:
    """
    Freeze an analysis together with current prices.

    Recommendation lines whose symbol is missing from the feed, or whose
    price is unknown or <= 0, are dropped rather than zero-filled; a snapshot
    can therefore hold fewer lines than the analysis.
    """
    now = ensure_aware(now or local_now())
    asset_map = {a.symbol: a for a in assets}

    lines: list[SnapshotRecommendation] = []
    for rec in analysis.recommendations:
        asset = asset_map.get(rec.symbol)
        if asset is None or not asset.is_investable:
            logger.info(f"[Snapshot] Dropping {rec.symbol}: no entry price")
            continue
        lines.append(SnapshotRecommendation(
            symbol=rec.symbol,
            name=rec.name,
            allocation=rec.allocation,
            price_at_recommendation=asset.price,
        ))

    return PortfolioSnapshot(
        id=_snapshot_id(now),
        timestamp=now.isoformat(),
        formatted_date=format_tr_datetime(now),
        recommendations=lines,
        target_return=target_return,
        risk_level=risk_level,
        data_source=data_source,
    )


# ---------------------------------------------------------------------------
# Performance
# ---------------------------------------------------------------------------

def calculate_performance(
    snapshot: PortfolioSnapshot,
    current_assets: list[Asset],
    now: Optional[datetime] = None,
) -> PerformanceResult:
    """
    Weighted P&L of a snapshot against current prices.

    Lines without a current, positive price are skipped entirely (not counted
    as zero). change_pct is rounded to 2 decimals, each weighted contribution
    to 3 before summing, and the total to 2.
    """
    asset_map = {a.symbol: a for a in current_assets}

    metrics: list[PerformanceMetric] = []
    for rec in snapshot.recommendations:
        current = asset_map.get(rec.symbol)
        if current is None or not current.is_investable or rec.price_at_recommendation <= 0:
            continue

        entry = rec.price_at_recommendation
        change_pct = round((current.price - entry) / entry * 100, 2)
        weighted = round(change_pct * rec.allocation / 100, 3)
        metrics.append(PerformanceMetric(
            symbol=rec.symbol,
            name=rec.name,
            allocation=rec.allocation,
            price_at_recommendation=entry,
            current_price=current.price,
            change_pct=change_pct,
            weighted_contribution=weighted,
        ))

    total_pnl = round(sum(m.weighted_contribution for m in metrics), 2)

    now = ensure_aware(now or local_now())
    created = parse_iso(snapshot.timestamp)
    if created is None:
        logger.warning(f"[Snapshot] {snapshot.id} has unparseable timestamp '{snapshot.timestamp}'")
        days_since = 0
    else:
        elapsed = (now - created).total_seconds()
        days_since = max(0, math.floor(elapsed / _SECONDS_PER_DAY))

    return PerformanceResult(
        snapshot=snapshot,
        metrics=metrics,
        total_pnl=total_pnl,
        days_since=days_since,
        has_current_prices=bool(metrics),
    )
