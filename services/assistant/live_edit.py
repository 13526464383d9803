"""Decide whether a draft is written into the document or returned as chat."""

from __future__ import annotations

from typing import Optional

from . import metrics
from .rules import ANNOUNCEMENT, STRUCTURE_MARKER, WRITING_INTENT, matches, rules_for
from .schemas import LiveEditDecision, RouterDecision
from .settings import get_settings

settings = get_settings()

EDITING_TASKS = frozenset({"rewrite", "extend", "style"})
STRUCTURED_MIN_CHARS = 500
SUBSTANTIAL_MIN_CHARS = 100
ANNOUNCEMENT_MIN_CHARS = 20


def is_structured(draft: str) -> bool:
    return len(draft) > STRUCTURED_MIN_CHARS and matches(draft, STRUCTURE_MARKER)


def _announced_payload(draft: str) -> Optional[str]:
    for rule in rules_for(ANNOUNCEMENT):
        match = rule.search(draft)
        if match:
            payload = match.group("payload").strip()
            if len(payload) > ANNOUNCEMENT_MIN_CHARS:
                return payload
    return None


def extract_content(draft: str) -> str:
    """Pull the insertable span out of ``draft``; empty when nothing qualifies."""
    text = (draft or "").strip()
    payload = _announced_payload(text)
    if payload is not None:
        extracted = payload
    elif is_structured(text) or len(text) > SUBSTANTIAL_MIN_CHARS:
        extracted = text
    else:
        extracted = ""
    if len(extracted) < SUBSTANTIAL_MIN_CHARS and len(text) > SUBSTANTIAL_MIN_CHARS:
        # never drop most of a long draft because of an aggressive match
        return text
    return extracted


def decide(
    decision: Optional[RouterDecision],
    draft: str,
    confidence: float,
    coverage: float,
    ask: str = "",
) -> LiveEditDecision:
    """Structured path when a router decision exists, heuristic path otherwise."""
    text = (draft or "").strip()
    extracted = extract_content(text)
    if decision is not None:
        eligible = (
            decision.task in EDITING_TASKS
            and confidence > settings.live_edit_min_confidence
            and coverage > settings.live_edit_min_coverage
        )
    else:
        eligible = (
            _announced_payload(text) is not None
            or matches(ask or "", WRITING_INTENT)
            or is_structured(text)
        )
    triggered = eligible and len(extracted) >= settings.live_edit_min_chars
    metrics.record_live_edit(triggered)
    return LiveEditDecision(
        shouldTriggerLiveEdit=triggered,
        extractedContent=extracted if triggered else "",
    )
