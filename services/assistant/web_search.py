"""Best-effort web search client with a hard timeout."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from . import metrics
from .schemas import WebResult
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")
settings = get_settings()


def _to_result(item: Dict[str, Any]) -> Optional[WebResult]:
    url = str(item.get("url") or item.get("link") or "").strip()
    if not url:
        return None
    title = str(item.get("title") or url).strip()
    snippet = str(item.get("snippet") or item.get("description") or item.get("content") or "").strip()
    published = item.get("publishedDate") or item.get("published_date") or item.get("date")
    return WebResult(
        title=title,
        url=url,
        snippet=snippet,
        publishedDate=str(published) if published else None,
    )


async def _fetch(query: str, max_results: int, timeout_s: float) -> List[WebResult]:
    url = f"{str(settings.web_search_url).rstrip('/')}/v1/search"
    async with httpx.AsyncClient(timeout=timeout_s) as client:
        response = await client.post(url, json={"query": query, "max_results": max_results})
        response.raise_for_status()
        data = response.json()
    items = data.get("results") if isinstance(data, dict) else data
    if not isinstance(items, list):
        logger.warning("Web search returned no result list: %s", type(items).__name__)
        items = []
    results: List[WebResult] = []
    for item in items:
        if isinstance(item, dict):
            result = _to_result(item)
            if result is not None:
                results.append(result)
    return results[:max_results]


async def search(query: str, timeout_ms: Optional[int] = None) -> List[WebResult]:
    """Search the web; timeouts and errors yield an empty list instead of raising."""
    if not settings.web_search_url or not query or not query.strip():
        return []
    timeout_s = (timeout_ms or settings.web_search_timeout_ms) / 1000
    try:
        # wait_for cancels the in-flight request once the deadline passes
        return await asyncio.wait_for(_fetch(query, settings.web_max_results, timeout_s), timeout=timeout_s)
    except (asyncio.TimeoutError, httpx.TimeoutException):
        metrics.web_search_failures.labels("timeout").inc()
        logger.warning("Web search timed out after %.0fms", timeout_s * 1000)
        return []
    except (httpx.HTTPError, ValueError) as exc:
        metrics.web_search_failures.labels("error").inc()
        logger.warning("Web search failed: %s", exc)
        return []
    except Exception as exc:
        metrics.web_search_failures.labels("error").inc()
        logger.warning("Web search failed unexpectedly: %s", exc)
        return []
