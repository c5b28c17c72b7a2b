"""
Asset Feed — Input Schema

Typed view of the market-data feed consumed by both allocation engines.
The feed is produced fresh on every fetch cycle by an external collaborator
and may be noisy: prices can be missing or non-positive. The schema accepts
such records; the engines decide what is investable.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

AssetType = Literal[
    "stock", "etf", "index", "forex", "crypto",
    "commodity", "bond", "fund", "realestate",
]

AssetCategory = Literal[
    "bist", "global", "forex", "crypto", "commodity",
    "bond", "tefas", "us_stock", "tr_realestate",
]

CATEGORY_LABELS: dict[str, str] = {
    "bist": "BIST Endeksleri",
    "global": "Global Endeksler",
    "forex": "Dövizler",
    "crypto": "Kripto Paralar",
    "commodity": "Emtialar",
    "bond": "Tahviller",
    "tefas": "TEFAS Fonları",
    "us_stock": "ABD Hisse Senetleri",
    "tr_realestate": "Türkiye Gayrimenkul Piyasası",
}


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class HistoricalReturns(BaseModel):
    """Period returns in percent."""

    one_month: float = 0.0
    three_month: float = 0.0
    six_month: float = 0.0
    ytd: float = 0.0
    one_year: float = 0.0


class Asset(BaseModel):
    """One quotable instrument at a point in time."""

    model_config = {"frozen": True}

    symbol: str = Field(..., min_length=1)
    name: str = ""
    type: AssetType
    category: AssetCategory
    price: Optional[float] = Field(
        None, description="Current price in local currency; None when the feed has no quote",
    )
    price_usd: Optional[float] = None
    weekly_change: float = 0.0
    weekly_change_pct: float = 0.0
    volume: Optional[str] = None
    sector: Optional[str] = None
    historical_returns: HistoricalReturns = Field(default_factory=HistoricalReturns)
    sparkline: list[float] = Field(default_factory=list)

    @field_validator("symbol")
    @classmethod
    def strip_symbol(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("symbol must not be blank")
        return v

    @property
    def is_investable(self) -> bool:
        return self.price is not None and self.price > 0

    @property
    def display_name(self) -> str:
        return self.name or self.symbol


def investable_assets(assets: list[Asset]) -> list[Asset]:
    """Drop assets with a missing or non-positive price, keeping feed order."""
    return [a for a in assets if a.is_investable]
