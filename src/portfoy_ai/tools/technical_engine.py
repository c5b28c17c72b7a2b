"""
Technical Signal Builder
Smoothed RSI (Wilder) and SMA crossover signals from daily closes.

Pure functions over pandas Series:
- RSI-14: rolling-mean seed of the first 14 deltas, then Wilder smoothing
  (an EWM with alpha = 1 / period)
- Simple moving averages (rolling mean)
- Composite BUY / SELL / NEUTRAL signal with a human-readable label
- Prompt section for the AI engine

No LLM, no file I/O. Missing data yields None fields, never an exception.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import pandas as pd

from portfoy_ai.config.constants import (
    RSI_OVERBOUGHT,
    RSI_OVERSOLD,
    RSI_PERIOD,
    SMA_CROSSOVER_BAND_PCT,
    SMA_LONG_PERIOD,
    SMA_SHORT_PERIOD,
)
from portfoy_ai.schemas.technical_output import INSUFFICIENT_DATA_LABEL, TechnicalSignal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Indicators
# ---------------------------------------------------------------------------

def calculate_rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> Optional[float]:
    """
    Wilder's smoothed RSI.

    Needs at least period + 1 closes (oldest first). The first `period`
    deltas seed the average gain/loss as a simple mean; every later delta is
    folded in with avg = (avg * (period - 1) + x) / period.

    Returns:
        RSI rounded to 2 decimals, 100.0 when no loss was observed, or None
        when there is not enough data.
    """
    if len(prices) < period + 1:
        return None

    delta = pd.Series(prices, dtype=float).diff().dropna().reset_index(drop=True)
    gains = delta.clip(lower=0)
    losses = (-delta).clip(lower=0)

    avg_gain = _wilder_average(gains, period)
    avg_loss = _wilder_average(losses, period)

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return round(100 - 100 / (1 + rs), 2)


def calculate_sma(prices: Sequence[float], period: int) -> Optional[float]:
    """Mean of the last `period` closes, 4 decimals; None if too few points."""
    if period <= 0 or len(prices) < period:
        return None
    sma = pd.Series(prices, dtype=float).rolling(window=period, min_periods=period).mean()
    return round(float(sma.iloc[-1]), 4)


def _wilder_average(values: pd.Series, period: int) -> float:
    """Rolling-mean seed over the first `period` values, then EWM(alpha=1/period)."""
    seed = float(values.rolling(window=period).mean().iloc[period - 1])
    rest = values.iloc[period:]
    if rest.empty:
        return seed
    smoothed = pd.concat([pd.Series([seed]), rest], ignore_index=True)
    return float(smoothed.ewm(alpha=1 / period, adjust=False).mean().iloc[-1])


# ---------------------------------------------------------------------------
# Composite signal
# ---------------------------------------------------------------------------

def build_technical_signal(symbol: str, prices: Sequence[float]) -> TechnicalSignal:
    """
    Build the composite signal for one symbol.

    RSI decides first (overbought -> SELL, oversold -> BUY). The SMA7/SMA14
    spread can only fill a NEUTRAL slot, never override an RSI verdict.
    """
    rsi14 = calculate_rsi(prices, RSI_PERIOD)
    sma7 = calculate_sma(prices, SMA_SHORT_PERIOD)
    sma14 = calculate_sma(prices, SMA_LONG_PERIOD)

    signal = "NEUTRAL"
    parts: list[str] = []

    if rsi14 is not None:
        if rsi14 > RSI_OVERBOUGHT:
            signal = "SELL"
            parts.append(f"RSI(14)={rsi14} → Aşırı Alım")
        elif rsi14 < RSI_OVERSOLD:
            signal = "BUY"
            parts.append(f"RSI(14)={rsi14} → Aşırı Satım")
        else:
            parts.append(f"RSI(14)={rsi14} → Nötr")

    if sma7 is not None and sma14 is not None and sma14 != 0:
        diff = (sma7 - sma14) / sma14 * 100
        if diff > SMA_CROSSOVER_BAND_PCT:
            parts.append("SMA7>SMA14 → Kısa vadeli yükseliş")
            if signal == "NEUTRAL":
                signal = "BUY"
        elif diff < -SMA_CROSSOVER_BAND_PCT:
            parts.append("SMA7<SMA14 → Kısa vadeli düşüş")
            if signal == "NEUTRAL":
                signal = "SELL"
        else:
            parts.append("SMA7≈SMA14 → Yatay trend")

    label = " | ".join(parts) if parts else INSUFFICIENT_DATA_LABEL

    return TechnicalSignal(
        symbol=symbol, rsi14=rsi14, sma7=sma7, sma14=sma14, signal=signal, label=label,
    )


def build_technical_signals(price_history: dict[str, Sequence[float]]) -> list[TechnicalSignal]:
    """One signal per symbol, in the mapping's order. Non-numeric points are dropped."""
    signals: list[TechnicalSignal] = []
    for symbol, closes in price_history.items():
        clean = [float(p) for p in closes if isinstance(p, (int, float)) and not isinstance(p, bool)]
        if len(clean) != len(closes):
            logger.warning(
                f"[Technical] {symbol}: dropped {len(closes) - len(clean)} non-numeric closes"
            )
        signals.append(build_technical_signal(symbol, clean))
    logger.info(f"[Technical] Built {len(signals)} signals")
    return signals


# ---------------------------------------------------------------------------
# Prompt section
# ---------------------------------------------------------------------------

def format_signals_for_prompt(signals: Sequence[TechnicalSignal]) -> str:
    """Signal lines plus the weighting rules the model should apply; '' if none."""
    if not signals:
        return ""

    lines = "\n".join(f"  - {s.symbol}: {s.label}" for s in signals)
    return (
        f"TEKNİK ANALİZ SİNYALLERİ (son 14 günlük günlük veri):\n"
        f"{lines}\n\n"
        f"PORTFÖY AĞIRLANDIRMA KURALI:\n"
        f"  - RSI > {RSI_OVERBOUGHT} olan varlıkların ağırlığını düşür (aşırı alım riski)\n"
        f"  - RSI < {RSI_OVERSOLD} olan varlıklara dikkatli yaklaş "
        f"(fırsat olabilir, momentum devam edebilir)\n"
        f"  - SMA7 > SMA14 olan varlıklar kısa vadeli momentum açısından daha güçlü"
    )
