"""
Snapshot & Performance Tracker — Schema

PortfolioSnapshot is the durable record of one recommendation event; the
performance models are derived on demand by joining a snapshot with the
current asset feed and are never stored.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

DataSource = Literal["live", "mock"]

DATA_SOURCES: tuple[str, ...] = ("live", "mock")


class SnapshotRecommendation(BaseModel):
    """A recommendation line frozen together with its entry price."""

    symbol: str = Field(..., min_length=1)
    name: str = ""
    allocation: int = Field(..., ge=0, le=100)
    price_at_recommendation: float = Field(..., gt=0)


class PortfolioSnapshot(BaseModel):
    """One persisted recommendation event."""

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    timestamp: str = Field(..., description="ISO 8601, used for date math")
    formatted_date: str = ""
    recommendations: list[SnapshotRecommendation] = Field(default_factory=list)
    target_return: float
    risk_level: str
    data_source: DataSource = "live"


class PerformanceMetric(BaseModel):
    """Entry vs current price for one snapshot line."""

    symbol: str
    name: str
    allocation: int
    price_at_recommendation: float
    current_price: float
    change_pct: float = Field(..., description="(current - entry) / entry * 100")
    weighted_contribution: float = Field(..., description="change_pct * allocation / 100")


class PerformanceResult(BaseModel):
    """Weighted P&L of a snapshot against the current feed."""

    snapshot: PortfolioSnapshot
    metrics: list[PerformanceMetric] = Field(default_factory=list)
    total_pnl: float = 0.0
    days_since: int = Field(..., ge=0)
    has_current_prices: bool = False
