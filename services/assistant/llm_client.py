"""Shared HTTP client for language model calls."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from . import metrics
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")
settings = get_settings()


class LLMError(RuntimeError):
    """The model endpoint failed, timed out or returned an unusable payload."""


async def complete(
    messages: List[Dict[str, str]],
    *,
    model: str,
    temperature: float,
    max_tokens: int,
    response_format: Optional[Dict[str, Any]] = None,
    purpose: str = "chat",
) -> str:
    """Send one chat completion request and return the assistant text."""
    request_body: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if response_format:
        request_body["response_format"] = response_format
    headers = {"Content-Type": "application/json"}
    if settings.llm_api_key:
        headers["Authorization"] = f"Bearer {settings.llm_api_key}"
    url = f"{settings.llm_url.rstrip('/')}/v1/chat/completions"

    start = time.perf_counter()
    try:
        async with httpx.AsyncClient(timeout=settings.llm_request_timeout_s) as client:
            response = await client.post(url, headers=headers, json=request_body)
            response.raise_for_status()
    except httpx.TimeoutException as exc:
        metrics.llm_timeouts.labels(purpose).inc()
        logger.warning("Timeout while waiting for %s completion", purpose)
        raise LLMError(f"{purpose} completion timed out") from exc
    except httpx.HTTPStatusError as exc:
        logger.error("LLM request failed: %s", exc.response.text)
        raise LLMError(f"{purpose} completion failed with status {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        logger.error("LLM request failed: %s", exc)
        raise LLMError(f"{purpose} completion failed: {exc}") from exc
    finally:
        metrics.llm_request_duration.labels(purpose, model).observe(time.perf_counter() - start)

    try:
        data = response.json()
    except ValueError as exc:  # pragma: no cover
        raise LLMError("LLM response was not valid JSON") from exc
    if not isinstance(data, dict):
        raise LLMError("LLM API returned malformed payload")
    choices = data.get("choices") or []
    if not choices:
        raise LLMError("LLM response missing choices")
    message = choices[0].get("message") or {}
    text = (message.get("content") or "").strip()
    if not text:
        raise LLMError("LLM response missing text content")
    return text
