"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
from typing import Any, Dict


def strip_code_fences(text: str) -> str:
    """Remove markdown fence lines (```json ... ```) around a model response."""
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    lines = [line for line in stripped.split("\n") if not line.strip().startswith("```")]
    return "\n".join(lines).strip()


def parse_llm_json(raw: str) -> Dict[str, Any]:
    """Recover a JSON object from an LLM response.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract the substring between the first '{' and the last '}'
    3. Return an empty dict

    Only objects count: a bare list, string or number yields ``{}``, since
    every caller expects named fields.
    """
    if not raw:
        return {}

    text = strip_code_fences(raw)
    candidates = [text]
    start = text.find("{")
    end = text.rfind("}") + 1
    if start >= 0 and end > start:
        candidates.append(text[start:end])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    return {}
