"""Helpers for parsing and validating AI JSON responses."""

from __future__ import annotations

import json
import logging
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_LINE = re.compile(r"^\s*```[a-zA-Z]*\s*$")


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence lines the model may wrap its answer in."""
    lines = [line for line in text.strip().splitlines() if not _FENCE_LINE.match(line)]
    return "\n".join(lines).replace("```", "").strip()


def parse_json_object(text: str | None) -> dict | None:
    if not text:
        return None
    content = strip_code_fences(text)
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        match = re.search(r"\{[\s\S]*\}", content)
        if not match:
            logger.warning(f"Failed to parse JSON object: {exc}")
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as inner_exc:
            logger.warning(f"Failed to parse JSON object: {inner_exc}")
            return None
    return data if isinstance(data, dict) else None


def validate_model(model_cls: type[ModelT], data: dict | None) -> ModelT | None:
    if data is None:
        return None
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        logger.warning(f"Model validation failed: {exc}")
        return None


def coerce_confidence(value: object, default: float = 0.5) -> float:
    """Clamp a model-reported confidence into [0, 1]; non-numeric -> default."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(0.0, min(1.0, number))
