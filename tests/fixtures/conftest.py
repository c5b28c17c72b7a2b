"""
Shared test fixtures for the allocation engine tests.
Provides sample asset feeds, a fixed clock, snapshot builders and mock
Anthropic clients / SDK errors.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from portfoy_ai.schemas.market_data import Asset
from portfoy_ai.schemas.snapshot_output import PortfolioSnapshot, SnapshotRecommendation
from portfoy_ai.tools.kv_store import InMemoryStore

ISTANBUL = timezone(timedelta(hours=3))

FIXED_NOW = datetime(2026, 10, 17, 9, 30, tzinfo=ISTANBUL)
"""Saturday, 17 October 2026 09:30 (UTC+3)"""

SUNDAY_MORNING = datetime(2026, 10, 18, 9, 15, tzinfo=ISTANBUL)
"""Sunday, 18 October 2026 09:15 (UTC+3), ISO week 2026-W42"""

_MESSAGES_URL = "https://api.anthropic.com/v1/messages"


# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

def make_asset(
    symbol: str,
    type: str = "stock",
    category: str = "bist",
    change_pct: float = 0.0,
    price: Optional[float] = 100.0,
    name: Optional[str] = None,
) -> Asset:
    """Build an Asset with sensible defaults."""
    return Asset(
        symbol=symbol,
        name=name if name is not None else f"{symbol} Name",
        type=type,
        category=category,
        price=price,
        weekly_change=0.0 if price is None else round(price * change_pct / 100, 4),
        weekly_change_pct=change_pct,
    )


def scenario_a_assets() -> list[Asset]:
    """2 funds (+1%, +2%), 1 bond (+0.5%), 1 BIST stock (+3%), 1 ETF (+1.5%), 1 crypto (+5%)."""
    return [
        make_asset("TCD", "fund", "tefas", 1.0, price=4.2),
        make_asset("AFT", "fund", "tefas", 2.0, price=6.8),
        make_asset("TR10Y", "bond", "bond", 0.5, price=27.5),
        make_asset("THYAO", "stock", "bist", 3.0, price=310.0),
        make_asset("SPY", "etf", "us_stock", 1.5, price=560.0),
        make_asset("BTC", "crypto", "crypto", 5.0, price=65000.0),
    ]


def mixed_universe() -> list[Asset]:
    """Every pool populated with several members, plus noise (unpriced, real estate)."""
    return [
        make_asset("XU100", "index", "bist", 1.2, price=9800.0),
        make_asset("THYAO", "stock", "bist", 3.0, price=310.0),
        make_asset("ASELS", "stock", "bist", -1.5, price=62.0),
        make_asset("GARAN", "stock", "bist", 2.2, price=118.0),
        make_asset("AAPL", "stock", "us_stock", 1.8, price=228.0),
        make_asset("NVDA", "stock", "us_stock", 4.1, price=131.0),
        make_asset("SPX", "index", "global", -0.4, price=5700.0),
        make_asset("SPY", "etf", "us_stock", 1.5, price=560.0),
        make_asset("QQQ", "etf", "us_stock", 2.4, price=480.0),
        make_asset("TCD", "fund", "tefas", 1.0, price=4.2),
        make_asset("AFT", "fund", "tefas", 2.0, price=6.8),
        make_asset("IPJ", "fund", "tefas", 0.7, price=12.1),
        make_asset("BTC", "crypto", "crypto", 5.0, price=65000.0),
        make_asset("ETH", "crypto", "crypto", -2.0, price=2600.0),
        make_asset("SOL", "crypto", "crypto", 7.5, price=150.0),
        make_asset("XAU", "commodity", "commodity", 0.9, price=2650.0),
        make_asset("BRENT", "commodity", "commodity", -3.1, price=74.0),
        make_asset("TR10Y", "bond", "bond", 0.5, price=27.5),
        make_asset("USDTRY", "forex", "forex", 0.3, price=34.3),
        make_asset("KONUT", "realestate", "tr_realestate", 2.9, price=1500.0),
        make_asset("DEAD", "stock", "bist", 9.9, price=None),
        make_asset("ZERO", "crypto", "crypto", 12.0, price=0.0),
    ]


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

def make_snapshot(
    lines: list[tuple[str, int, float]],
    snapshot_id: str = "snap-1",
    timestamp: Optional[datetime] = None,
    risk_level: str = "medium",
) -> PortfolioSnapshot:
    """Snapshot from (symbol, allocation, entry price) triples."""
    ts = timestamp or FIXED_NOW
    return PortfolioSnapshot(
        id=snapshot_id,
        timestamp=ts.isoformat(),
        formatted_date="",
        recommendations=[
            SnapshotRecommendation(
                symbol=sym, name=f"{sym} Name", allocation=alloc, price_at_recommendation=price,
            )
            for sym, alloc, price in lines
        ],
        target_return=3.0,
        risk_level=risk_level,
    )


# ---------------------------------------------------------------------------
# Anthropic mocks
# ---------------------------------------------------------------------------

def mock_response(text: str, input_tokens: int = 1200, output_tokens: int = 300) -> MagicMock:
    """Messages API response whose first content block carries `text`."""
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    response.usage.input_tokens = input_tokens
    response.usage.output_tokens = output_tokens
    return response


def mock_client(text: str = "", side_effect: Any = None) -> MagicMock:
    """Anthropic-compatible client returning `text`, or raising `side_effect`."""
    client = MagicMock()
    if side_effect is not None:
        client.messages.create.side_effect = side_effect
    else:
        client.messages.create.return_value = mock_response(text)
    return client


def ai_json(recommendations: list[dict], **extra: Any) -> str:
    """Serialized model answer with the required fields filled in."""
    payload = {
        "summary": "Piyasa pozitif, momentum güçlü.",
        "recommendations": recommendations,
        "riskNote": "Orta risk.",
        "whyNow": "Faiz indirimi beklentisi.",
        "risks": ["Kur oynaklığı", "Jeopolitik risk"],
        "opportunities": "Teknoloji hisselerinde toparlanma.",
    }
    payload.update(extra)
    return json.dumps(payload, ensure_ascii=False)


def _status_response(status: int) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", _MESSAGES_URL))


def auth_error() -> anthropic.AuthenticationError:
    return anthropic.AuthenticationError(
        "invalid x-api-key", response=_status_response(401), body=None,
    )


def rate_limit_error() -> anthropic.RateLimitError:
    return anthropic.RateLimitError(
        "rate_limit_error", response=_status_response(429), body=None,
    )


def server_error() -> anthropic.InternalServerError:
    return anthropic.InternalServerError(
        "overloaded", response=_status_response(500), body=None,
    )


def connection_error() -> anthropic.APIConnectionError:
    return anthropic.APIConnectionError(request=httpx.Request("POST", _MESSAGES_URL))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def no_api_key(monkeypatch):
    """Ensure no credential leaks in from the environment."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("PORTFOY_AI_PROXY_URL", raising=False)
    monkeypatch.delenv("PORTFOY_AI_MODEL", raising=False)
