"""Utilities for parsing model output into actions."""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from ..errors import TranslationFailed
from ..models import Action, ActionOrigin


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract the first JSON object found in *text* and return it as a dict."""

    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _strip_code_fence(cleaned)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or end <= start:
        raise ValueError("No JSON object found in model response")
    snippet = cleaned[start : end + 1]
    data = json.loads(snippet)
    if not isinstance(data, dict):
        raise ValueError("Model response is not a JSON object")
    return data


def parse_action(text: str, *, instruction: str | None = None) -> Action:
    """Parse raw model output into a translated :class:`Action`."""

    try:
        data = extract_json_object(text)
    except ValueError as exc:
        raise TranslationFailed(f"Unparseable model output: {exc}") from exc
    data = {k: v for k, v in data.items() if k not in {"origin", "instruction"}}
    data["origin"] = ActionOrigin.TRANSLATED
    data["instruction"] = instruction
    try:
        return Action.model_validate(data)
    except ValidationError as exc:
        raise TranslationFailed(f"Model output does not describe an action: {exc}") from exc


def _strip_code_fence(block: str) -> str:
    parts = block.split("```")
    if len(parts) >= 3:
        inner = parts[1]
        if inner.lstrip().lower().startswith("json"):
            inner = inner.lstrip()[4:]
        return inner
    return block.strip("`")
