"""
Category Pools
Partition the investable universe into the fixed pools the allocation
blueprints draw from, and pick assets from a pool without reusing symbols.

Pool membership is exclusive and checked in this order:
    etf (type) > fund (type or TEFAS) > crypto > commodity
    > bond (bonds and FX-as-bonds) > domestic_equity (BIST)
    > foreign_equity (US stocks, global indices)
Anything else (real estate, ...) belongs to no pool.

No LLM, no file I/O.
"""

from __future__ import annotations

import logging
from typing import Optional

from portfoy_ai.config.constants import POOL_NAMES
from portfoy_ai.schemas.market_data import Asset

logger = logging.getLogger(__name__)


def period_return(asset: Asset) -> float:
    """Return used for ranking and rationale text (weekly change, %)."""
    return asset.weekly_change_pct


def classify_pool(asset: Asset) -> Optional[str]:
    """Pool name for an asset, or None when no blueprint pool fits."""
    if asset.type == "etf":
        return "etf"
    if asset.type == "fund" or asset.category == "tefas":
        return "fund"
    if asset.category == "crypto" or asset.type == "crypto":
        return "crypto"
    if asset.category == "commodity" or asset.type == "commodity":
        return "commodity"
    if asset.category in ("bond", "forex") or asset.type in ("bond", "forex"):
        return "bond"
    if asset.category == "bist":
        return "domestic_equity"
    if asset.category in ("us_stock", "global"):
        return "foreign_equity"
    return None


def build_category_pools(assets: list[Asset]) -> dict[str, list[Asset]]:
    """
    Partition assets into pools, each sorted best performer first.

    Every pool name is present in the result, empty or not. Ties keep feed
    order (stable sort).
    """
    pools: dict[str, list[Asset]] = {name: [] for name in POOL_NAMES}
    unpooled = 0
    for asset in assets:
        pool = classify_pool(asset)
        if pool is None:
            unpooled += 1
            continue
        pools[pool].append(asset)

    for name in pools:
        pools[name].sort(key=period_return, reverse=True)

    logger.info(
        "[Pools] "
        + ", ".join(f"{name}={len(members)}" for name, members in pools.items())
        + (f", unpooled={unpooled}" if unpooled else "")
    )
    return pools


def select_from_pool(pool: list[Asset], count: int, used_symbols: set[str]) -> list[Asset]:
    """
    Take up to `count` assets in pool order, skipping symbols in `used_symbols`.

    Selected symbols are added to `used_symbols`, so successive calls over
    the same set never pick a symbol twice.
    """
    picks: list[Asset] = []
    for asset in pool:
        if len(picks) >= count:
            break
        if asset.symbol in used_symbols:
            continue
        picks.append(asset)
        used_symbols.add(asset.symbol)
    return picks


def top_gainers(assets: list[Asset], used_symbols: set[str], limit: int) -> list[Asset]:
    """Best weekly gainers (> 0) regardless of pool, excluding used symbols."""
    gainers = sorted(
        (a for a in assets if period_return(a) > 0),
        key=period_return,
        reverse=True,
    )
    return select_from_pool(gainers, limit, used_symbols)
