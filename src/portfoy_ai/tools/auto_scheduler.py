"""
Weekly Auto-Analysis Guard
Decides whether the scheduled Sunday-morning analysis should run now, and
records that it ran.

Guards (all must pass):
    1. today is Sunday
    2. local time is 09:00 or later
    3. no automatic run yet in this ISO week (primary guard)
    4. no automatic run yet today (secondary guard)
    5. no run currently in progress in this process

The run is marked BEFORE the callback executes, so a failing analysis is
not retried the same week.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from typing import Callable, Optional

from portfoy_ai.config.constants import (
    AUTO_TRIGGER_HOUR,
    AUTO_TRIGGER_WEEKDAY,
    LAST_AUTO_DAY_KEY,
    LAST_AUTO_TIMESTAMP_KEY,
    LAST_AUTO_WEEK_KEY,
)
from portfoy_ai.tools.date_utils import format_tr_weekday, local_now, parse_iso
from portfoy_ai.tools.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

_running = threading.Lock()


def iso_week_str(d: date) -> str:
    """ISO 8601 week label, e.g. '2026-W08'."""
    iso_year, iso_week, _ = d.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def should_trigger(store: KeyValueStore, now: Optional[datetime] = None) -> bool:
    now = now or local_now()
    if now.weekday() != AUTO_TRIGGER_WEEKDAY:
        return False
    if now.hour < AUTO_TRIGGER_HOUR:
        return False
    if store.get(LAST_AUTO_WEEK_KEY) == iso_week_str(now.date()):
        return False
    if store.get(LAST_AUTO_DAY_KEY) == now.date().isoformat():
        return False
    return True


def mark_auto_analyzed(store: KeyValueStore, now: Optional[datetime] = None) -> None:
    """Record today's date, ISO week and full timestamp."""
    now = now or local_now()
    store.set(LAST_AUTO_DAY_KEY, now.date().isoformat())
    store.set(LAST_AUTO_WEEK_KEY, iso_week_str(now.date()))
    store.set(LAST_AUTO_TIMESTAMP_KEY, now.isoformat())


def was_auto_analyzed(store: KeyValueStore, now: Optional[datetime] = None) -> bool:
    """True if the automatic analysis already ran today or this ISO week."""
    now = now or local_now()
    return (
        store.get(LAST_AUTO_DAY_KEY) == now.date().isoformat()
        or store.get(LAST_AUTO_WEEK_KEY) == iso_week_str(now.date())
    )


def last_auto_analysis_label(store: KeyValueStore) -> Optional[str]:
    """
    Human-readable date of the last automatic run, e.g. 'Pazar, 19 Ekim'.

    Prefers the full timestamp, then the day key. An unparseable stored
    value is returned as-is.
    """
    raw = store.get(LAST_AUTO_TIMESTAMP_KEY) or store.get(LAST_AUTO_DAY_KEY)
    if not raw:
        return None
    parsed = parse_iso(str(raw))
    if parsed is None:
        return str(raw)
    return format_tr_weekday(parsed.date())


def run_if_due(
    store: KeyValueStore,
    on_trigger: Callable[[], object],
    now: Optional[datetime] = None,
) -> bool:
    """
    Invoke `on_trigger` if every guard passes.

    Returns:
        True if the callback was invoked (even if it then failed).
    """
    if not _running.acquire(blocking=False):
        logger.info("[Scheduler] Previous automatic run still in progress, skipping")
        return False
    try:
        if not should_trigger(store, now):
            return False
        mark_auto_analyzed(store, now)
        logger.info("[Scheduler] Weekly automatic analysis triggered")
        try:
            on_trigger()
        except Exception as e:
            logger.warning(f"[Scheduler] Automatic analysis failed: {e}")
        return True
    finally:
        _running.release()
