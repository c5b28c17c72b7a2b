"""
API Key Store
User-entered provider credentials kept in the key-value store under one
key. The Claude key is the only one the engine itself consumes; when none
is stored, the ANTHROPIC_API_KEY environment variable is used instead.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from portfoy_ai.config.constants import API_KEY_ENV_VAR, API_KEYS_KEY
from portfoy_ai.tools.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


class ApiKeys(BaseModel):
    """Provider credentials; empty string means 'not configured'."""

    model_config = ConfigDict(extra="ignore")

    claude: str = ""
    yahoo_finance: str = ""
    tavily: str = ""
    gemini: str = ""


def get_api_keys(store: KeyValueStore) -> ApiKeys:
    """Stored keys merged over defaults; corrupt values read as defaults."""
    raw = store.get(API_KEYS_KEY)
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning(f"[Keys] '{API_KEYS_KEY}' is not an object, using defaults")
        return ApiKeys()
    try:
        return ApiKeys.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"[Keys] Corrupt stored keys ({e.error_count()} errors), using defaults")
        return ApiKeys()


def save_api_keys(store: KeyValueStore, keys: ApiKeys) -> None:
    store.set(API_KEYS_KEY, keys.model_dump())


def resolve_claude_key(store: Optional[KeyValueStore] = None) -> Optional[str]:
    """Stored Claude key, else the environment variable, else None."""
    if store is not None:
        stored = get_api_keys(store).claude.strip()
        if stored:
            return stored
    env_key = os.environ.get(API_KEY_ENV_VAR, "").strip()
    return env_key or None


def has_claude_key(store: Optional[KeyValueStore] = None) -> bool:
    return resolve_claude_key(store) is not None
