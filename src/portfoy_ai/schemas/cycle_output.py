"""
Analysis Cycle — Output Schema

Everything one user-triggered (or scheduled) analysis produces: the
recommendation, the snapshot that was stored for it, the diff against the
previous recommendation and the performance of the snapshot before it.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from portfoy_ai.schemas.analysis_output import AnalysisResult
from portfoy_ai.schemas.diff_output import PortfolioDiff
from portfoy_ai.schemas.snapshot_output import PerformanceResult, PortfolioSnapshot

AIErrorKind = Literal["invalid_credential", "rate_limited", "timeout"]


class AnalysisCycleOutput(BaseModel):
    """Result of run_analysis_cycle()."""

    analysis: AnalysisResult
    snapshot: PortfolioSnapshot
    diff: PortfolioDiff
    previous_performance: Optional[PerformanceResult] = Field(
        None, description="Last stored snapshot measured against the current feed",
    )
    ai_error: Optional[AIErrorKind] = Field(
        None, description="Why the AI result was replaced by the rule-based one, if the caller must know",
    )
    technical_signal_count: int = Field(0, ge=0)
    macro_context_used: bool = False
