"""
Centralized configuration for the PortföyAI allocation engine.

This module defines the allocation blueprints, signal thresholds, storage
keys and the fixed product copy used by both engines. Keeping the allocation
policy here as plain data lets it be tuned and tested independently of the
selection and normalization logic.
"""

from __future__ import annotations

from dataclasses import dataclass

# ============================================================================
# ALLOCATION BLUEPRINTS
# ============================================================================

POOL_NAMES: tuple[str, ...] = (
    "domestic_equity",
    "foreign_equity",
    "etf",
    "fund",
    "crypto",
    "commodity",
    "bond",
)


@dataclass(frozen=True)
class BlueprintSlot:
    """One (pool, pick count, target percentage) entry of a blueprint."""

    pool: str
    count: int
    percentage: float


ALLOCATION_BLUEPRINTS: dict[str, tuple[BlueprintSlot, ...]] = {
    # Capital protection first: funds, bonds and commodities carry 65%
    "low": (
        BlueprintSlot("fund", 2, 27),
        BlueprintSlot("bond", 2, 28),
        BlueprintSlot("commodity", 1, 10),
        BlueprintSlot("domestic_equity", 1, 15),
        BlueprintSlot("etf", 1, 15),
        BlueprintSlot("crypto", 1, 5),
    ),
    "medium": (
        BlueprintSlot("domestic_equity", 2, 25),
        BlueprintSlot("foreign_equity", 1, 20),
        BlueprintSlot("fund", 1, 20),
        BlueprintSlot("crypto", 1, 15),
        BlueprintSlot("commodity", 1, 10),
        BlueprintSlot("bond", 1, 10),
    ),
    # Equities + crypto carry 80%; funds and bonds capped at 5% each
    "high": (
        BlueprintSlot("domestic_equity", 2, 30),
        BlueprintSlot("foreign_equity", 2, 25),
        BlueprintSlot("crypto", 2, 25),
        BlueprintSlot("etf", 1, 10),
        BlueprintSlot("fund", 1, 5),
        BlueprintSlot("bond", 1, 5),
    ),
}

MIN_TOTAL_PICKS = 3
"""Below this many blueprint picks, the global gainer fallback fills the gap"""

ALLOCATION_TOTAL = 100
"""Every non-empty recommendation set sums to exactly this"""

MIN_ALLOCATION = 1
"""Every recommended asset carries at least this weight"""

AI_ALLOCATION_TOLERANCE = 5
"""Model allocations further than this from 100 are rescaled proportionally"""

# ============================================================================
# TARGET RETURN
# ============================================================================

WEEKS_PER_MONTH = 52 / 12
"""Monthly target -> weekly equivalent conversion factor"""

DEFAULT_TARGET_RETURN = 3.0
"""Monthly target return (%) used by the scheduler when none was saved"""

DEFAULT_RISK_LEVEL = "medium"

# ============================================================================
# TECHNICAL SIGNALS
# ============================================================================

RSI_PERIOD = 14
SMA_SHORT_PERIOD = 7
SMA_LONG_PERIOD = 14

RSI_OVERBOUGHT = 70
"""RSI strictly above this is a SELL (overbought)"""

RSI_OVERSOLD = 30
"""RSI strictly below this is a BUY (oversold)"""

SMA_CROSSOVER_BAND_PCT = 0.5
"""SMA7 vs SMA14 spread (%) beyond which a short-term trend is reported"""

# ============================================================================
# SNAPSHOTS & DIFF
# ============================================================================

MAX_SNAPSHOTS = 10
"""Snapshot history capacity (strict FIFO)"""

MATERIAL_CHANGE_THRESHOLD = 3
"""|allocation delta| (percentage points) at which a HOLD counts as changed"""

# ============================================================================
# STORAGE KEYS
# ============================================================================

SNAPSHOT_KEY = "portfolyoai_snapshots"
PREV_RECOMMENDATIONS_KEY = "portfolyoai_prev_recommendations"
API_KEYS_KEY = "portfolyoai_api_keys"
LAST_AUTO_DAY_KEY = "portfolyoai_last_auto_sunday"
LAST_AUTO_WEEK_KEY = "portfolyoai_last_auto_week"
LAST_AUTO_TIMESTAMP_KEY = "portfolyoai_last_auto_timestamp"

# ============================================================================
# AUTO SCHEDULER
# ============================================================================

AUTO_TRIGGER_WEEKDAY = 6
"""datetime.weekday() value for Sunday"""

AUTO_TRIGGER_HOUR = 9
"""Earliest local hour for the weekly automatic analysis"""

# ============================================================================
# LLM
# ============================================================================

DEFAULT_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_AI_TIMEOUT = 45.0
"""Deadline (seconds) the analysis cycle gives the AI engine before falling back"""

LLM_REQUEST_TIMEOUT = DEFAULT_AI_TIMEOUT
"""SDK request timeout; never longer than the cycle deadline"""

LLM_MAX_RETRIES = 0
"""SDK-level retries; the cycle falls back instead of retrying"""

API_KEY_ENV_VAR = "ANTHROPIC_API_KEY"
PROXY_URL_ENV_VAR = "PORTFOY_AI_PROXY_URL"
MODEL_ENV_VAR = "PORTFOY_AI_MODEL"

PROMPT_TOP_N = 5
MACRO_EXCERPT_CHARS = 300

# ============================================================================
# PRODUCT COPY
# ============================================================================

RISK_LABELS: dict[str, str] = {
    "low": "Düşük",
    "medium": "Orta",
    "high": "Yüksek",
}

RISK_NOTES: dict[str, str] = {
    "low": "✅ Düşük riskli, korumacı portföy. Sermaye koruması ön plandadır.",
    "medium": "ℹ️ Dengeli portföy. Orta düzey volatilite ile istikrarlı büyüme hedeflenmektedir.",
    "high": (
        "⚠️ Yüksek riskli portföy. Yüksek volatilite beklenmektedir. "
        "Sadece kaybetmeyi göze alabileceğiniz tutarları yatırın."
    ),
}

POOL_LABELS: dict[str, str] = {
    "domestic_equity": "BIST / yurt içi hisse",
    "foreign_equity": "ABD / yabancı hisse",
    "etf": "ETF",
    "fund": "TEFAS fonları",
    "crypto": "Kripto",
    "commodity": "Emtia",
    "bond": "Tahvil / döviz",
}

RATIONALE_TEMPLATES: dict[str, str] = {
    "domestic_equity": "Borsa İstanbul tarafında öne çıkan performans. Haftalık: %{ret:.2f}.",
    "etf": "Düşük maliyetli, geniş çeşitlendirme sağlayan ETF. Haftalık: %{ret:.2f}.",
    "fund": "Profesyonel yönetimli TEFAS fonu, istikrar katmanı. Haftalık: %{ret:.2f}.",
    "crypto": "Yüksek getiri potansiyeli, yüksek volatilite. Haftalık: %{ret:.2f}.",
    "commodity": "Enflasyona ve kur riskine karşı emtia koruması. Haftalık: %{ret:.2f}.",
    "bond": "Sabit getirili / döviz bazlı koruma pozisyonu. Haftalık: %{ret:.2f}.",
}

DEFAULT_RATIONALE_TEMPLATE = "Güçlü haftalık getiri: %{ret:.2f}. Momentum pozisyonu."

TR_MONTHS: tuple[str, ...] = (
    "Ocak", "Şubat", "Mart", "Nisan", "Mayıs", "Haziran",
    "Temmuz", "Ağustos", "Eylül", "Ekim", "Kasım", "Aralık",
)

TR_WEEKDAYS: tuple[str, ...] = (
    "Pazartesi", "Salı", "Çarşamba", "Perşembe", "Cuma", "Cumartesi", "Pazar",
)
