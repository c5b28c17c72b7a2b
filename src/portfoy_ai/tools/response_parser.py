"""
AI Engine Tool: Response Parser
Validation pipeline for the model's text answer:

1. extract_json_object() - first balanced {...} in the text
2. json.loads()
3. AIAnalysisPayload - strict schema (required fields, types, unique symbols)

Every failure raises AIResponseError with an error_type the AI engine logs
before falling back. Allocation correction happens afterwards, in the engine.

No LLM, no file I/O.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError

from portfoy_ai.exceptions import AIResponseError
from portfoy_ai.schemas.analysis_output import AIAnalysisPayload

logger = logging.getLogger(__name__)


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced top-level {...} substring, or None.

    Braces inside JSON string literals (including escaped quotes) are not
    counted, so prose before/after the object and code fences are tolerated.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from this brace; try the next opening brace
        start = text.find("{", start + 1)
    return None


def parse_ai_response(text: str) -> AIAnalysisPayload:
    """
    Run the full validation pipeline over a raw model answer.

    Raises:
        AIResponseError: error_type NO_JSON_OBJECT, INVALID_JSON or SCHEMA_MISMATCH.
    """
    json_str = extract_json_object(text)
    if json_str is None:
        raise AIResponseError("no JSON object in model response", error_type="NO_JSON_OBJECT")

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise AIResponseError(f"invalid JSON: {e}", error_type="INVALID_JSON") from e

    try:
        return AIAnalysisPayload.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise AIResponseError(
            f"response does not match schema ({', '.join(fields) or 'root'})",
            error_type="SCHEMA_MISMATCH",
        ) from e
