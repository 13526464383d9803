"""LLM task router that classifies an ask into a task kind and needs flags."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .json_parsing import STRICT, parse_model_output
from .llm_client import complete
from .rules import detect_signals
from .schemas import TASK_KINDS, Needs, Query, RouterDecision, Target
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")
settings = get_settings()

ROUTER_PROMPT = (
    "You classify requests sent to a document-editing assistant. Return strict JSON only, no prose:\n"
    "{\n"
    f'  "task": one of {json.dumps(list(TASK_KINDS))},\n'
    '  "confidence": number between 0 and 1,\n'
    '  "needs": {\n'
    '    "selectionText": boolean,\n'
    '    "docContext": "none" | "current" | "linked" | "all",\n'
    '    "webContext": "no" | "recommended" | "required",\n'
    '    "precision": "low" | "medium" | "high"\n'
    "  },\n"
    '  "query": { "semantic": string, "keywords": string[] },\n'
    '  "targets": [{ "type": "selection" | "paragraph" | "heading" | "line_range" | "table_cell" | "all", '
    '"value": string | number | {"start": number, "end": number}, "anchor": string }]\n'
    "}\n"
    "Set selectionText when the request operates on the selected text. "
    "Use webContext=required only for information that cannot be in the user's documents "
    "(live prices, news, events after the documents were written). "
    "precision=high for factual or technical answers, low for creative writing. "
    "query.semantic is the request rewritten as a retrieval query."
)

_WORD_RE = re.compile(r"[\w'-]+")


def fallback_decision(ask: str, selection: Optional[str] = None) -> RouterDecision:
    """Deterministic decision used whenever the model output cannot be trusted."""
    keywords = [word for word in _WORD_RE.findall(ask or "") if len(word) > 3]
    return RouterDecision(
        task="rewrite",
        confidence=0.5,
        needs=Needs(
            selectionText=bool(selection),
            docContext="current",
            webContext="no",
            precision="medium",
        ),
        query=Query(semantic=ask or "", keywords=keywords),
        targets=[Target(type="selection", value=selection or "all")],
    )


def _render_session(session_context: Optional[Dict[str, Any]]) -> str:
    if not session_context:
        return "None"
    lines: List[str] = []
    if session_context.get("documentTitle"):
        lines.append(f"Current document: {session_context['documentTitle']}")
    linked = session_context.get("linkedDocumentCount")
    if linked:
        lines.append(f"Linked documents: {linked}")
    recent = session_context.get("recentTurns")
    if recent:
        lines.append(f"Recent conversation:\n{recent}")
    return "\n".join(lines) or "None"


@dataclass(frozen=True)
class Routing:
    decision: RouterDecision
    degraded: bool = False


async def classify(
    ask: str,
    selection: Optional[str] = None,
    session_context: Optional[Dict[str, Any]] = None,
) -> Routing:
    """Classify ``ask``; never raises.

    When the model output cannot be used the decision is ``fallback_decision``
    and ``degraded`` is set, so callers can tell a classified ask from a guess.
    """
    signals = detect_signals(ask or "")
    user_block = (
        f"Request:\n{ask}\n\n"
        f"Selected text:\n{selection or 'None'}\n\n"
        f"Session:\n{_render_session(session_context)}\n\n"
        f"Keyword signals: {', '.join(signals) or 'none'}"
    )
    messages = [
        {"role": "system", "content": ROUTER_PROMPT},
        {"role": "user", "content": user_block},
    ]
    try:
        raw_text = await complete(
            messages,
            model=settings.routing_model,
            temperature=0.1,
            max_tokens=settings.router_max_tokens,
            response_format={"type": "json_object"},
            purpose="router",
        )
        decision, stage = parse_model_output(raw_text, RouterDecision)
        if stage != STRICT:
            logger.info("Router output recovered by %s parse", stage)
        return Routing(decision)
    except (ValidationError, json.JSONDecodeError) as exc:
        logger.warning("Router JSON parse failed: %s", exc)
    except Exception as exc:
        logger.warning("Router failed: %s", exc)
    return Routing(fallback_decision(ask, selection), degraded=True)


async def route(
    ask: str,
    selection: Optional[str] = None,
    session_context: Optional[Dict[str, Any]] = None,
) -> RouterDecision:
    """Classify ``ask``, degrading to ``fallback_decision`` instead of raising."""
    return (await classify(ask, selection, session_context)).decision
