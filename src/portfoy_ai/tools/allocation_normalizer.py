"""
Allocation Normalizer
Turns raw slot weights (rule-based engine) or model-supplied percentages
(AI engine) into integer allocations that sum to exactly 100.

Discipline shared by both engines:
- every entry except the last is rounded (half up) from its share of the total
- the last entry absorbs the rounding remainder
- a remainder <= 0 is floored at 1, and so is every other entry; the excess
  this creates is taken back from the largest entries

No LLM, no file I/O.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

from portfoy_ai.config.constants import (
    AI_ALLOCATION_TOLERANCE,
    ALLOCATION_TOTAL,
    MIN_ALLOCATION,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """0.5 rounds away from zero for positive values (round() would give banker's rounding)."""
    return int(math.floor(value + 0.5))


def _enforce_floor(allocations: list[int]) -> list[int]:
    """Floor every entry at MIN_ALLOCATION and trim any excess from the largest."""
    floored = [max(MIN_ALLOCATION, a) for a in allocations]
    excess = sum(floored) - ALLOCATION_TOTAL
    while excess > 0:
        # first of the largest entries, so earlier (higher priority) lines shrink first
        idx = max(range(len(floored)), key=lambda i: floored[i])
        floored[idx] -= 1
        excess -= 1
    return floored


def normalize_allocations(weights: Sequence[float]) -> list[int]:
    """
    Convert raw weights to integer percentages summing to 100.

    Args:
        weights: Non-negative raw weights in display order. Weights that sum
            to zero (e.g. gainer fallback picks only) are split evenly.

    Returns:
        One integer allocation per weight; [] for no weights.
    """
    n = len(weights)
    if n == 0:
        return []
    if n > ALLOCATION_TOTAL // MIN_ALLOCATION:
        raise ValueError(f"Cannot give {n} positions a minimum of {MIN_ALLOCATION}%")

    clean = [max(0.0, float(w)) for w in weights]
    total = sum(clean)
    if total <= 0:
        clean = [1.0] * n
        total = float(n)

    result = [round_half_up(w / total * ALLOCATION_TOTAL) for w in clean[:-1]]
    remainder = ALLOCATION_TOTAL - sum(result)
    if remainder <= 0:
        remainder = MIN_ALLOCATION
    result.append(remainder)

    return _enforce_floor(result)


def correct_allocations(
    allocations: Sequence[float],
    tolerance: float = AI_ALLOCATION_TOLERANCE,
) -> list[int]:
    """
    Repair model-supplied allocations so they sum to exactly 100.

    A sum more than `tolerance` points away from 100 is rescaled
    proportionally (normalize_allocations). A smaller drift is absorbed by
    the last entry, unless that would leave it below the minimum, in which
    case the proportional rescale is used as well.
    """
    if not allocations:
        return []

    total = sum(allocations)
    if abs(total - ALLOCATION_TOTAL) > tolerance:
        logger.info(
            f"[Normalizer] Allocation sum {total:.1f} outside ±{tolerance} of "
            f"{ALLOCATION_TOTAL}, rescaling {len(allocations)} entries"
        )
        return normalize_allocations(allocations)

    head = [round_half_up(a) for a in allocations[:-1]]
    last = ALLOCATION_TOTAL - sum(head)
    if last < MIN_ALLOCATION:
        return normalize_allocations(allocations)
    return _enforce_floor(head + [last])
