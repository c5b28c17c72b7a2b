"""
Portfolio Diff Engine — Output Schema

Week-over-week classification of every symbol across the previous and the
newest recommendation set.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

RecommendationAction = Literal["BUY", "SELL", "HOLD", "NEW"]

# BUY is reserved for callers that distinguish "add to position"; it sorts with NEW
ACTION_ORDER: dict[str, int] = {"NEW": 0, "BUY": 0, "HOLD": 1, "SELL": 2}


class PreviousRecommendation(BaseModel):
    """Single-slot baseline entry the next diff compares against."""

    symbol: str = Field(..., min_length=1)
    name: str = ""
    allocation: int = Field(..., ge=0, le=100)


class RecommendationDiff(BaseModel):
    """Classification of one symbol."""

    symbol: str
    name: str = ""
    allocation: int = Field(..., ge=0, le=100, description="New allocation; 0 for SELL")
    action: RecommendationAction
    prev_allocation: Optional[int] = None
    allocation_delta: Optional[int] = None

    @model_validator(mode="after")
    def sell_has_no_allocation(self) -> "RecommendationDiff":
        if self.action == "SELL" and self.allocation != 0:
            raise ValueError(f"SELL entry for {self.symbol} must carry allocation 0")
        return self


class PortfolioDiff(BaseModel):
    """All per-symbol classifications plus the change summary lists."""

    diffs: list[RecommendationDiff] = Field(default_factory=list)
    has_changes: bool = False
    new_symbols: list[str] = Field(default_factory=list)
    removed_symbols: list[str] = Field(default_factory=list)
    changed_symbols: list[str] = Field(default_factory=list)
