"""
Portfolio Diff Engine: Position Differ

Pure functions for:
- Diffing the newest recommendation set against the previous one
- Loading / advancing the single-slot "previous recommendations" baseline

The diff never touches the store. Advancing the baseline is a separate,
explicit call so the same diff can be recomputed against the same baseline
any number of times.
"""

from __future__ import annotations

import logging
from typing import Sequence

from pydantic import ValidationError

from portfoy_ai.config.constants import MATERIAL_CHANGE_THRESHOLD, PREV_RECOMMENDATIONS_KEY
from portfoy_ai.schemas.diff_output import (
    ACTION_ORDER,
    PortfolioDiff,
    PreviousRecommendation,
    RecommendationDiff,
)
from portfoy_ai.schemas.snapshot_output import PortfolioSnapshot
from portfoy_ai.tools.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Baseline storage
# ---------------------------------------------------------------------------

def load_previous_recommendations(store: KeyValueStore) -> list[PreviousRecommendation]:
    """Stored baseline; corrupt or missing reads as empty."""
    raw = store.get(PREV_RECOMMENDATIONS_KEY)
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning(f"[Diff] '{PREV_RECOMMENDATIONS_KEY}' is not a list, treating baseline as empty")
        return []
    try:
        return [PreviousRecommendation.model_validate(item) for item in raw]
    except ValidationError as e:
        logger.warning(f"[Diff] Corrupt baseline ({e.error_count()} errors), treating as empty")
        return []


def update_previous_recommendations(store: KeyValueStore, snapshot: PortfolioSnapshot) -> None:
    """Overwrite the baseline with the snapshot's (symbol, name, allocation) triples."""
    store.set(
        PREV_RECOMMENDATIONS_KEY,
        [
            {"symbol": r.symbol, "name": r.name, "allocation": r.allocation}
            for r in snapshot.recommendations
        ],
    )
    logger.info(f"[Diff] Baseline advanced to snapshot {snapshot.id}")


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------

def compute_portfolio_diff(
    new_snapshot: PortfolioSnapshot,
    previous: Sequence[PreviousRecommendation],
) -> PortfolioDiff:
    """
    Classify every symbol in the union of both sets.

    NEW  - only in the new set
    HOLD - in both; listed in changed_symbols when |delta| >= 3 points
    SELL - only in the previous set; allocation 0, delta = -previous

    Output order is NEW, HOLD, SELL; within a group, the order symbols were
    encountered (new set order, then previous set order).
    """
    prev_map = {r.symbol: r for r in previous}
    new_map = {r.symbol: r for r in new_snapshot.recommendations}

    diffs: list[RecommendationDiff] = []
    new_symbols: list[str] = []
    removed_symbols: list[str] = []
    changed_symbols: list[str] = []

    for symbol, rec in new_map.items():
        prev = prev_map.get(symbol)
        if prev is None:
            diffs.append(RecommendationDiff(
                symbol=symbol, name=rec.name, allocation=rec.allocation, action="NEW",
            ))
            new_symbols.append(symbol)
            continue

        delta = rec.allocation - prev.allocation
        diffs.append(RecommendationDiff(
            symbol=symbol,
            name=rec.name,
            allocation=rec.allocation,
            action="HOLD",
            prev_allocation=prev.allocation,
            allocation_delta=delta,
        ))
        if abs(delta) >= MATERIAL_CHANGE_THRESHOLD:
            changed_symbols.append(symbol)

    for symbol, prev in prev_map.items():
        if symbol in new_map:
            continue
        diffs.append(RecommendationDiff(
            symbol=symbol,
            name=prev.name,
            allocation=0,
            action="SELL",
            prev_allocation=prev.allocation,
            allocation_delta=-prev.allocation,
        ))
        removed_symbols.append(symbol)

    # sorted() is stable, so encounter order survives within each group
    diffs = sorted(diffs, key=lambda d: ACTION_ORDER[d.action])

    has_changes = bool(new_symbols or removed_symbols or changed_symbols)
    logger.info(
        f"[Diff] new={len(new_symbols)}, sell={len(removed_symbols)}, "
        f"hold={len(diffs) - len(new_symbols) - len(removed_symbols)}, "
        f"changed={len(changed_symbols)}"
    )
    return PortfolioDiff(
        diffs=diffs,
        has_changes=has_changes,
        new_symbols=new_symbols,
        removed_symbols=removed_symbols,
        changed_symbols=changed_symbols,
    )
