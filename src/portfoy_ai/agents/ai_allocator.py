"""
AI-Augmented Allocation Engine
Ask the language model for a portfolio, validate its answer strictly, and
fall back to the rule-based engine whenever the answer cannot be used.

Receives the same inputs as the rule-based engine plus optional technical
signals and macro-context text.
Produces an AnalysisResult with:
- the model's narrative (summary, why_now, risks, opportunities) verbatim
- allocations corrected to sum to exactly 100
- is_ai_generated=True

Only two failures leave this module: InvalidCredentialError (HTTP 401) and
RateLimitExceededError (HTTP 429). Every other failure (transport errors,
missing JSON, schema mismatch) is logged and answered with the rule-based
result for the same inputs.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Optional, Sequence

import anthropic

from portfoy_ai.agents.rule_based_allocator import run_rule_based_analysis
from portfoy_ai.config.constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    LLM_MAX_RETRIES,
    LLM_REQUEST_TIMEOUT,
    MODEL_ENV_VAR,
    PROXY_URL_ENV_VAR,
    RISK_NOTES,
)
from portfoy_ai.exceptions import (
    AIResponseError,
    ErrorSeverity,
    InvalidCredentialError,
    ProcessingError,
    RateLimitExceededError,
)
from portfoy_ai.schemas.analysis_output import (
    AIAnalysisPayload,
    AnalysisResult,
    PortfolioRecommendation,
)
from portfoy_ai.schemas.market_data import Asset, investable_assets
from portfoy_ai.schemas.technical_output import TechnicalSignal
from portfoy_ai.tools.allocation_normalizer import correct_allocations
from portfoy_ai.tools.api_key_store import resolve_claude_key
from portfoy_ai.tools.date_utils import format_tr_datetime, local_now
from portfoy_ai.tools.prompt_builder import build_analysis_prompt
from portfoy_ai.tools.response_parser import parse_ai_response
from portfoy_ai.tools.token_tracker import track

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

def build_client(api_key: str, proxy_url: Optional[str] = None) -> anthropic.Anthropic:
    """
    Anthropic client for the given credential.

    The key travels in the x-api-key header. A proxy URL, when given, replaces
    the provider base URL so requests pass through the header-attaching proxy.
    SDK retries are off: a slow call must not outlive the cycle deadline.
    """
    kwargs: dict[str, Any] = {
        "api_key": api_key,
        "timeout": LLM_REQUEST_TIMEOUT,
        "max_retries": LLM_MAX_RETRIES,
    }
    if proxy_url:
        kwargs["base_url"] = proxy_url
    return anthropic.Anthropic(**kwargs)


def _log_fallback(
    error_type: str,
    exc: Exception,
    context: Optional[dict] = None,
) -> None:
    err = ProcessingError.from_exception(
        source="ai_allocator",
        error_type=error_type,
        exception=exc,
        severity=ErrorSeverity.WARNING,
        context=context,
    )
    logger.warning(f"[AI] Falling back to rule-based result: {err.to_dict()}")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def run_ai_analysis(
    assets: list[Asset],
    target_return: float,
    risk_level: str,
    technical_signals: Optional[Sequence[TechnicalSignal]] = None,
    macro_context: Optional[str] = None,
    api_key: Optional[str] = None,
    client: Optional[Any] = None,
    model: Optional[str] = None,
    proxy_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AnalysisResult:
    """
    Run the AI-augmented allocation with rule-based fallback.

    Args:
        assets: Current asset feed; unpriced assets are ignored.
        target_return: Monthly target return in percent.
        risk_level: "low" | "medium" | "high".
        technical_signals: Optional per-symbol RSI/SMA signals for the prompt.
        macro_context: Optional macro commentary for the prompt.
        api_key: Claude credential; defaults to ANTHROPIC_API_KEY.
        client: Pre-built anthropic-compatible client (tests inject a mock).
        model: Model id; defaults to PORTFOY_AI_MODEL or DEFAULT_MODEL.
        proxy_url: Base URL of the forwarding proxy; defaults to PORTFOY_AI_PROXY_URL.
        now: Timestamp source, shared with the fallback so both agree.

    Returns:
        AnalysisResult; is_ai_generated tells which engine produced it.

    Raises:
        InvalidCredentialError: The provider rejected the credential.
        RateLimitExceededError: The provider rate-limited the request.
    """
    now = now or local_now()
    model = model or os.environ.get(MODEL_ENV_VAR) or DEFAULT_MODEL

    def fallback() -> AnalysisResult:
        return run_rule_based_analysis(assets, target_return, risk_level, now=now)

    if client is None:
        key = api_key or resolve_claude_key()
        if not key:
            logger.info("[AI] No Claude credential configured, using rule-based engine")
            return fallback()
        client = build_client(key, proxy_url or os.environ.get(PROXY_URL_ENV_VAR))

    universe = investable_assets(assets)
    if not universe:
        logger.info("[AI] No investable assets, skipping model call")
        return fallback()

    prompt = build_analysis_prompt(
        universe,
        target_return,
        risk_level,
        technical_signals=technical_signals,
        macro_context=macro_context,
        now=now,
    )
    logger.info(
        f"[AI] Requesting allocation from {model}: {len(universe)} assets, "
        f"signals={len(technical_signals or [])}, macro={'yes' if macro_context else 'no'}"
    )

    # Step 1: Transport
    try:
        response = client.messages.create(
            model=model,
            max_tokens=DEFAULT_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.AuthenticationError as e:
        logger.warning(f"[AI] Credential rejected by provider: {e}")
        raise InvalidCredentialError() from e
    except anthropic.RateLimitError as e:
        logger.warning(f"[AI] Rate limited by provider: {e}")
        raise RateLimitExceededError() from e
    except anthropic.APIError as e:
        _log_fallback("API_ERROR", e, {"model": model})
        return fallback()
    except Exception as e:
        _log_fallback("UNEXPECTED", e, {"model": model})
        return fallback()

    track("run_ai_analysis", response, model)
    text = getattr(response.content[0], "text", "") if response.content else ""

    # Steps 2-3: JSON extraction and schema validation
    try:
        payload = parse_ai_response(text)
    except AIResponseError as e:
        _log_fallback(e.error_type, e, {"model": model, "response_chars": len(text)})
        return fallback()

    # Step 4: Universe check and allocation correction
    try:
        recommendations = _build_recommendations(payload, universe)
    except AIResponseError as e:
        _log_fallback(e.error_type, e, {"model": model})
        return fallback()

    result = AnalysisResult(
        summary=payload.summary,
        recommendations=recommendations,
        risk_note=payload.risk_note or RISK_NOTES[risk_level],
        timestamp=format_tr_datetime(now),
        why_now=payload.why_now,
        risks=payload.risks,
        opportunities=payload.opportunities,
        is_ai_generated=True,
    )
    logger.info(
        "[AI] Done: "
        + ", ".join(f"{r.symbol}={r.allocation}%" for r in result.recommendations)
    )
    return result


def _build_recommendations(
    payload: AIAnalysisPayload,
    universe: list[Asset],
) -> list[PortfolioRecommendation]:
    """Keep symbols present in the feed and correct their allocations to 100."""
    by_symbol = {a.symbol: a for a in universe}

    known = [r for r in payload.recommendations if r.symbol in by_symbol]
    unknown = [r.symbol for r in payload.recommendations if r.symbol not in by_symbol]
    if unknown:
        logger.warning(f"[AI] Dropping symbols not in the feed: {unknown}")
    if not known:
        raise AIResponseError(
            "no recommended symbol is in the asset feed", error_type="UNKNOWN_SYMBOLS",
        )

    try:
        allocations = correct_allocations([r.allocation for r in known])
    except ValueError as e:
        # e.g. more positions than can each hold the minimum weight
        raise AIResponseError(str(e), error_type="ALLOCATION_CORRECTION") from e

    return [
        PortfolioRecommendation(
            symbol=r.symbol,
            name=r.name or by_symbol[r.symbol].display_name,
            allocation=allocation,
            rationale=r.rationale or "",
        )
        for r, allocation in zip(known, allocations)
    ]
