"""
Technical Signal Builder — Output Schema

Per-symbol RSI / SMA indicator bundle. Computed fresh per request from a
daily closing-price series; never persisted.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

SignalDirection = Literal["BUY", "SELL", "NEUTRAL"]

INSUFFICIENT_DATA_LABEL = "Yeterli veri yok"


class TechnicalSignal(BaseModel):
    """Composite technical view of one symbol."""

    symbol: str = Field(..., min_length=1)
    rsi14: Optional[float] = Field(None, ge=0, le=100)
    sma7: Optional[float] = None
    sma14: Optional[float] = None
    signal: SignalDirection = "NEUTRAL"
    label: str = INSUFFICIENT_DATA_LABEL
