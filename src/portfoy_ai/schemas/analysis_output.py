"""
Allocation Engines — Output Schema

Output contract shared by the rule-based and the AI-augmented engines, plus
the strict schema the language model's JSON answer must satisfy before it is
turned into an AnalysisResult.
"""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from portfoy_ai.config.constants import ALLOCATION_TOTAL


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RiskLevel = Literal["low", "medium", "high"]

RISK_LEVELS: tuple[str, ...] = ("low", "medium", "high")


def _check_unique_symbols(symbols: list[str]) -> None:
    seen: set[str] = set()
    for sym in symbols:
        if sym in seen:
            raise ValueError(f"duplicate symbol in recommendations: {sym}")
        seen.add(sym)


# ---------------------------------------------------------------------------
# Engine output
# ---------------------------------------------------------------------------

class PortfolioRecommendation(BaseModel):
    """One allocation line of a proposed portfolio."""

    symbol: str = Field(..., min_length=1)
    name: str = ""
    allocation: int = Field(..., ge=0, le=100, description="Integer percentage")
    rationale: str = ""


class AnalysisResult(BaseModel):
    """Complete output of one engine invocation."""

    summary: str
    recommendations: list[PortfolioRecommendation] = Field(
        default_factory=list, description="Display order",
    )
    risk_note: str
    timestamp: str
    why_now: Optional[str] = None
    risks: Optional[str] = None
    opportunities: Optional[str] = None
    is_ai_generated: bool = False

    @model_validator(mode="after")
    def allocations_sum_to_100(self) -> "AnalysisResult":
        # An empty recommendation list is the explicit empty-result contract
        if not self.recommendations:
            return self
        total = sum(r.allocation for r in self.recommendations)
        if total != ALLOCATION_TOTAL:
            raise ValueError(f"Allocations must sum to {ALLOCATION_TOTAL}, got {total}")
        _check_unique_symbols([r.symbol for r in self.recommendations])
        return self

    @property
    def symbols(self) -> list[str]:
        return [r.symbol for r in self.recommendations]


# ---------------------------------------------------------------------------
# Language model answer
# ---------------------------------------------------------------------------

class AIRecommendationPayload(BaseModel):
    """One recommendation as returned by the model, before correction."""

    model_config = ConfigDict(extra="ignore")

    symbol: str = Field(..., min_length=1, strict=True)
    name: Optional[str] = None
    allocation: float = Field(..., ge=0, allow_inf_nan=False, strict=True)
    rationale: Optional[str] = None

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("symbol must not be blank")
        return v


class AIAnalysisPayload(BaseModel):
    """Strict schema of the JSON object the model must produce."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    summary: str = Field(..., min_length=1, strict=True)
    recommendations: list[AIRecommendationPayload] = Field(..., min_length=1)
    risk_note: Optional[str] = Field(None, alias="riskNote")
    why_now: Optional[str] = Field(None, alias="whyNow")
    risks: Optional[Union[str, list[str]]] = None
    opportunities: Optional[Union[str, list[str]]] = None

    @field_validator("summary")
    @classmethod
    def summary_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("summary must not be blank")
        return v

    @field_validator("risks", "opportunities")
    @classmethod
    def join_list_fields(cls, v: Optional[Union[str, list[str]]]) -> Optional[str]:
        if isinstance(v, list):
            return "\n".join(f"- {item}" for item in v if item)
        return v

    @model_validator(mode="after")
    def unique_symbols(self) -> "AIAnalysisPayload":
        _check_unique_symbols([r.symbol for r in self.recommendations])
        return self
