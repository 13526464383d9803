"""Instruction planner turning a routed ask plus evidence into an InstructionJSON."""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from pydantic import ValidationError

from .events import PipelineEvents
from .json_parsing import load_object
from .llm_client import complete
from .schemas import (
    Constraints,
    ContextRef,
    EvidenceBundle,
    InstructionJSON,
    RouterDecision,
    Target,
    Telemetry,
)
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")
settings = get_settings()

EXCERPT_CHARS = 240

PLANNER_PROMPT = (
    "You are the planning step of a document-editing assistant. Turn the request into a strict JSON instruction:\n"
    "{\n"
    '  "task": string,\n'
    '  "inputs": { "target_text": string, ...task specific fields },\n'
    '  "targets": [{ "type": string, "value": string | number | {"start": number, "end": number}, "anchor": string }],\n'
    '  "context_refs": [{ "type": "doc" | "web", "id": string, "why": string }],\n'
    '  "constraints": { "maxWords": number, "tone": string, "citationStyle": string }\n'
    "}\n"
    "Task specific inputs: rewrite {style}, extend {after_anchor, outline[]}, fact_check {text}, "
    "table_create {columns[], rows[][]}, style {ops[]}.\n"
    "context_refs may only use ids from the numbered source list; leave it empty when no source is relevant. "
    "Respond with JSON only."
)


def _telemetry(decision: RouterDecision, bundle: EvidenceBundle) -> Telemetry:
    return Telemetry(
        routeConfidence=decision.confidence,
        ragUsed=bool(bundle.chunks),
        webUsed=bool(bundle.webResults),
    )


def fallback_instruction(
    decision: RouterDecision,
    ask: str,
    selection: Optional[str],
    bundle: EvidenceBundle,
) -> InstructionJSON:
    return InstructionJSON(
        task=decision.task,
        inputs={"target_text": selection or ask},
        targets=[Target(type="selection", value=selection or "all")],
        context_refs=[],
        constraints=Constraints(maxWords=500, tone="concise"),
        telemetry=_telemetry(decision, bundle),
    )


def _render_sources(bundle: EvidenceBundle) -> str:
    sources = bundle.numbered_sources()
    if not sources:
        return "None"
    lines = []
    for source in sources:
        excerpt = " ".join(source.text.split())[:EXCERPT_CHARS]
        lines.append(f"[{source.index}] id={source.id} kind={source.kind} title={source.label}\n{excerpt}")
    return "\n\n".join(lines)


def enforce_context_refs(
    refs: List[ContextRef],
    bundle: EvidenceBundle,
    events: Optional[PipelineEvents] = None,
) -> List[ContextRef]:
    """Keep only refs whose id is present in ``bundle``, once each."""
    allowed = bundle.source_ids()
    web_ids = {result.url for result in bundle.webResults}
    kept: List[ContextRef] = []
    seen: set[str] = set()
    for ref in refs:
        if ref.id in seen:
            continue
        if ref.id not in allowed:
            logger.warning("Dropping context ref %s not present in evidence bundle", ref.id)
            if events is not None:
                events.emit("context_ref", "dropped", ref=ref.id)
            continue
        seen.add(ref.id)
        kind = "web" if ref.id in web_ids else "doc"
        kept.append(ref if ref.type == kind else ref.model_copy(update={"type": kind}))
    return kept


async def plan(
    decision: RouterDecision,
    ask: str,
    selection: Optional[str],
    bundle: EvidenceBundle,
    *,
    events: Optional[PipelineEvents] = None,
) -> InstructionJSON:
    """Run the planner model and return a validated instruction bound to ``bundle``."""
    context_block = (
        f"Router decision:\n{decision.model_dump_json()}\n\n"
        f"Request:\n{ask}\n\n"
        f"Selected text:\n{selection or 'None'}\n\n"
        f"Sources:\n{_render_sources(bundle)}"
    )
    messages = [
        {"role": "system", "content": PLANNER_PROMPT},
        {"role": "user", "content": context_block},
    ]
    try:
        raw_text = await complete(
            messages,
            model=settings.routing_model,
            temperature=0.1,
            max_tokens=settings.planner_max_tokens,
            response_format={"type": "json_object"},
            purpose="planner",
        )
        data, _stage = load_object(raw_text)
        # the routed task is authoritative; the planner only fills in its details
        data["task"] = decision.task
        inputs = data.get("inputs")
        if not isinstance(inputs, dict):
            inputs = {}
        inputs.pop("task", None)
        if not inputs.get("target_text"):
            inputs["target_text"] = selection or ask
        data["inputs"] = inputs
        data.pop("telemetry", None)
        if not data.get("targets"):
            data["targets"] = [target.model_dump() for target in decision.targets]
        parsed = InstructionJSON.model_validate(data)
        return parsed.model_copy(
            update={
                "context_refs": enforce_context_refs(parsed.context_refs, bundle, events),
                "telemetry": _telemetry(decision, bundle),
            }
        )
    except (ValidationError, json.JSONDecodeError) as exc:
        logger.warning("Planner JSON parse failed: %s", exc)
        if events is not None:
            events.emit("plan", "fallback", reason="invalid_json")
        return fallback_instruction(decision, ask, selection, bundle)
    except Exception as exc:
        logger.warning("Planner failed: %s", exc)
        if events is not None:
            events.emit("plan", "fallback", reason="llm_error")
        return fallback_instruction(decision, ask, selection, bundle)
