"""
AI Engine Tool: Prompt Builder
Assemble the single user prompt sent to the language model, and compress
web-search results into the optional macro-context block.

The prompt carries only market data and instructions. The API credential
is never written into it.

No LLM, no file I/O.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from datetime import datetime
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from portfoy_ai.config.constants import (
    ALLOCATION_BLUEPRINTS,
    MACRO_EXCERPT_CHARS,
    POOL_LABELS,
    PROMPT_TOP_N,
    RISK_LABELS,
    WEEKS_PER_MONTH,
)
from portfoy_ai.schemas.market_data import CATEGORY_LABELS, Asset
from portfoy_ai.schemas.technical_output import TechnicalSignal
from portfoy_ai.tools.date_utils import format_tr_datetime
from portfoy_ai.tools.technical_engine import format_signals_for_prompt

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Macro context
# ---------------------------------------------------------------------------

MACRO_HEADER = "GÜNCEL MAKROEKONOMİK BAĞLAM (web araştırması):"

_WHITESPACE = re.compile(r"\s+")


class MacroContext(BaseModel):
    """Free-text market commentary injected into the prompt."""

    text: str = ""
    source_count: int = Field(0, ge=0)
    success: bool = False


def build_macro_context(results: Sequence[dict]) -> MacroContext:
    """
    Compress search results into one prompt block.

    Each result needs a 'content' string (results without one are skipped)
    and may carry a 'title'. Content is cut to the first 300 characters and
    whitespace-collapsed.

    Returns:
        MacroContext(success=False, text="") when nothing usable was found.
    """
    snippets: list[str] = []
    for item in results:
        content = item.get("content") if isinstance(item, dict) else None
        if not content or not isinstance(content, str):
            continue
        excerpt = _WHITESPACE.sub(" ", content[:MACRO_EXCERPT_CHARS]).strip()
        if not excerpt:
            continue
        title = str(item.get("title") or "").strip()
        snippets.append(f"• [{title}] {excerpt}")

    if not snippets:
        return MacroContext()

    logger.info(f"[Prompt] Macro context built from {len(snippets)} sources")
    return MacroContext(
        text=MACRO_HEADER + "\n" + "\n".join(snippets),
        source_count=len(snippets),
        success=True,
    )


# ---------------------------------------------------------------------------
# Prompt sections
# ---------------------------------------------------------------------------

def weekly_equivalent(monthly_target_pct: float) -> float:
    """Compounded weekly return (%) equivalent to a monthly target (%)."""
    if monthly_target_pct <= -100:
        return -100.0
    return ((1 + monthly_target_pct / 100) ** (1 / WEEKS_PER_MONTH) - 1) * 100


def _category_summary(assets: Sequence[Asset]) -> str:
    groups: dict[str, list[float]] = defaultdict(list)
    for a in assets:
        groups[a.category].append(a.weekly_change_pct)

    lines = []
    for category, changes in groups.items():
        avg = sum(changes) / len(changes)
        up = sum(1 for c in changes if c > 0)
        label = CATEGORY_LABELS.get(category, category)
        lines.append(
            f"  - {label}: ortalama %{avg:+.2f} ({up}/{len(changes)} yükselişte)"
        )
    return "\n".join(lines)


def _performer_lines(assets: Sequence[Asset]) -> str:
    lines = []
    for a in assets:
        lines.append(f"  - {a.symbol} ({a.display_name}): %{a.weekly_change_pct:+.2f}")
    return "\n".join(lines)


def _universe_lines(assets: Sequence[Asset]) -> str:
    return "\n".join(f"  {a.symbol} | {a.display_name} | {a.type}" for a in assets)


def bucket_guidance(risk_level: str) -> str:
    """Per-pool allocation guidance mirroring the rule-based blueprint."""
    slots = ALLOCATION_BLUEPRINTS[risk_level]
    lines = [
        f"  - {POOL_LABELS[s.pool]}: yaklaşık %{s.percentage:g} (en fazla {s.count} varlık)"
        for s in slots
    ]
    return "\n".join(lines)


_OUTPUT_FORMAT = """\
YANIT FORMATI:
Sadece tek bir geçerli JSON nesnesi döndür. Markdown, kod bloğu veya ek metin ekleme.
{
  "summary": "Piyasa ve portföy değerlendirmesi (2-4 cümle)",
  "recommendations": [
    {"symbol": "SEMBOL", "name": "Varlık adı", "allocation": 25, "rationale": "Kısa gerekçe"}
  ],
  "riskNote": "Risk profiline uygun kısa uyarı",
  "whyNow": "Bu portföyün neden şimdi önerildiği",
  "risks": "Başlıca riskler",
  "opportunities": "Başlıca fırsatlar"
}

KURALLAR:
  - allocation değerleri tam sayı olmalı ve toplamı tam olarak 100 olmalı
  - Her sembol yalnızca bir kez kullanılmalı
  - Sadece YATIRIM EVRENİ listesindeki sembolleri kullan"""


def build_analysis_prompt(
    assets: Sequence[Asset],
    target_return: float,
    risk_level: str,
    technical_signals: Optional[Sequence[TechnicalSignal]] = None,
    macro_context: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Build the full analysis prompt.

    Args:
        assets: Investable universe (callers filter out unpriced assets).
        target_return: Monthly target return in percent.
        risk_level: "low" | "medium" | "high".
        technical_signals: Optional per-symbol signals; section omitted if empty.
        macro_context: Optional macro text block; section omitted if blank.
        now: Timestamp printed in the prompt.

    Returns:
        Prompt text.
    """
    ranked = sorted(assets, key=lambda a: a.weekly_change_pct, reverse=True)
    top = ranked[:PROMPT_TOP_N]
    bottom = list(reversed(ranked[-PROMPT_TOP_N:])) if ranked else []
    weekly = weekly_equivalent(target_return)
    timestamp = format_tr_datetime(now) if now else ""

    sections = [
        "Sen deneyimli bir portföy yöneticisisin. Aşağıdaki piyasa verilerine göre "
        "haftalık bir portföy dağılımı öner.",
        f"TARİH: {timestamp}",
        (
            f"HEDEF: Aylık %{target_return:g} getiri "
            f"(bileşik haftalık karşılığı yaklaşık %{weekly:.2f})\n"
            f"RİSK PROFİLİ: {RISK_LABELS[risk_level]}"
        ),
        "KATEGORİ BAZINDA HAFTALIK PERFORMANS:\n" + _category_summary(assets),
        f"EN İYİ {len(top)} PERFORMANS:\n" + _performer_lines(top),
        f"EN ZAYIF {len(bottom)} PERFORMANS:\n" + _performer_lines(bottom),
        "YATIRIM EVRENİ (sembol | ad | tür):\n" + _universe_lines(assets),
    ]

    signals_text = format_signals_for_prompt(technical_signals or [])
    if signals_text:
        sections.append(signals_text)

    if macro_context and macro_context.strip():
        sections.append(macro_context.strip())

    sections.append(
        f"DAĞILIM REHBERİ ({RISK_LABELS[risk_level]} risk):\n" + bucket_guidance(risk_level)
    )
    sections.append(_OUTPUT_FORMAT)

    return "\n\n".join(sections)
