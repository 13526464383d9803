"""Two-stage parsing of model JSON output.

``parse_strict`` accepts only a document that is exactly one JSON object.
``parse_approximate`` is the secondary stage for chatty output: it pulls the
outermost ``{...}`` block out of surrounding prose or code fences and
repairs trailing commas before validating.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger("uvicorn.error")

ModelT = TypeVar("ModelT", bound=BaseModel)

STRICT = "strict"
APPROXIMATE = "approximate"

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def parse_strict(raw: str, model: Type[ModelT]) -> ModelT:
    data = json.loads((raw or "").strip())
    if not isinstance(data, dict):
        raise json.JSONDecodeError("Expected a JSON object", str(raw), 0)
    return model.model_validate(data)


def extract_json_object(raw: str) -> Dict[str, Any]:
    """Best-effort recovery of a JSON object embedded in free text."""
    text = raw or ""
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)
    match = _OBJECT_RE.search(text)
    if not match:
        raise json.JSONDecodeError("No JSON object found", raw or "", 0)
    candidate = match.group(0)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        data = json.loads(_TRAILING_COMMA_RE.sub(r"\1", candidate))
    if not isinstance(data, dict):
        raise json.JSONDecodeError("Expected a JSON object", candidate, 0)
    return data


def parse_approximate(raw: str, model: Type[ModelT]) -> ModelT:
    return model.model_validate(extract_json_object(raw))


def parse_model_output(raw: str, model: Type[ModelT]) -> Tuple[ModelT, str]:
    """Strict parse first, approximate second; returns the value and the stage that produced it.

    Raises ``ValidationError`` or ``json.JSONDecodeError`` when neither stage succeeds.
    """
    try:
        return parse_strict(raw, model), STRICT
    except (ValidationError, json.JSONDecodeError) as exc:
        logger.debug("Strict JSON parse failed for %s: %s", model.__name__, exc)
    return parse_approximate(raw, model), APPROXIMATE


def load_object(raw: str) -> Tuple[Dict[str, Any], str]:
    """Return the raw JSON object before schema validation, trying the strict stage first."""
    try:
        data = json.loads((raw or "").strip())
        if isinstance(data, dict):
            return data, STRICT
    except json.JSONDecodeError as exc:
        logger.debug("Strict JSON load failed: %s", exc)
    return extract_json_object(raw), APPROXIMATE
