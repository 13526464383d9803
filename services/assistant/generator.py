"""Response generation from an instruction and its evidence bundle."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .errors import GenerationError
from .llm_client import complete
from .schemas import ConversationTurn, EvidenceBundle, InstructionJSON
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")
settings = get_settings()

PRECISE_TASKS = frozenset({"fact_check", "extract", "compare", "reference_insert"})
_MARKER_RE = re.compile(r"\[(\d+)\]")

TASK_DIRECTIONS = {
    "rewrite": "Rewrite the target text. Return only the rewritten text.",
    "summarize": "Summarize the target text or sources faithfully.",
    "extend": "Continue the document from the target text in the same voice. Return only the new content.",
    "outline": "Produce a structured outline with headings and bullet points.",
    "critique": "Critique the target text with concrete, actionable feedback.",
    "fact_check": "Check each claim in the target text against the sources and state what is supported.",
    "reference_insert": "Insert references from the sources where they support the text.",
    "compare": "Compare the items requested point by point.",
    "table_create": "Produce a markdown table.",
    "table_edit": "Return the edited table as markdown.",
    "style": "Apply the requested style changes and return the restyled text.",
    "plan": "Produce a clear, ordered plan.",
    "extract": "Extract exactly the requested information from the sources.",
}


@dataclass
class Draft:
    text: str
    citations: List[str] = field(default_factory=list)


def temperature_for(instruction: InstructionJSON, precision: str = "medium") -> float:
    if precision == "high" or instruction.task in PRECISE_TASKS:
        return 0.1
    if precision == "low":
        return 0.5
    return 0.2


def _format_sources(bundle: EvidenceBundle) -> str:
    sources = bundle.numbered_sources()
    if not sources:
        return "None"
    # labels only; internal ids never reach the prompt
    return "\n\n".join(f"[{source.index}] {source.label}\n{source.text}" for source in sources)


def _format_instruction(instruction: InstructionJSON) -> str:
    inputs = instruction.inputs.model_dump(exclude={"task"}, exclude_none=True)
    targets = [target.model_dump(exclude_none=True) for target in instruction.targets]
    return (
        f"Task: {instruction.task}\n"
        f"Direction: {TASK_DIRECTIONS.get(instruction.task, '')}\n"
        f"Inputs: {json.dumps(inputs, ensure_ascii=False)}\n"
        f"Targets: {json.dumps(targets, ensure_ascii=False)}\n"
        f"Constraints: {instruction.constraints.model_dump_json(exclude_none=True)}"
    )


def build_system_prompt(instruction: InstructionJSON, bundle: EvidenceBundle, guidance: Sequence[str] = ()) -> str:
    rules = "\n".join(f"- {note}" for note in guidance) or "- Answer directly."
    return (
        "You are a writing assistant working inside the user's document editor.\n\n"
        f"Instruction:\n{_format_instruction(instruction)}\n\n"
        f"Sources:\n{_format_sources(bundle)}\n\n"
        f"Rules:\n{rules}"
    )


def extract_citations(text: str, bundle: EvidenceBundle) -> List[str]:
    """Readable labels for the [n] markers used in ``text``, in first-use order."""
    labels = {source.index: source.label for source in bundle.numbered_sources()}
    citations: List[str] = []
    for number in _MARKER_RE.findall(text):
        label = labels.get(int(number))
        if label and label not in citations:
            citations.append(label)
    return citations


async def generate(
    instruction: InstructionJSON,
    bundle: EvidenceBundle,
    ask: str,
    selection: Optional[str] = None,
    history: Sequence[ConversationTurn] = (),
    guidance: Sequence[str] = (),
    *,
    precision: str = "medium",
    max_tokens: Optional[int] = None,
) -> Draft:
    """Issue one completion for the draft; raises ``GenerationError`` on any model failure."""
    messages = [{"role": "system", "content": build_system_prompt(instruction, bundle, guidance)}]
    for turn in history:
        messages.append({"role": turn.role, "content": turn.content})
    user_content = ask if not selection else f"{ask}\n\nSelected text:\n{selection}"
    messages.append({"role": "user", "content": user_content})
    model = settings.chat_model
    try:
        text = await complete(
            messages,
            model=model,
            temperature=temperature_for(instruction, precision),
            max_tokens=max_tokens or settings.default_max_tokens,
            purpose="generate",
        )
    except Exception as exc:
        logger.error("Generation failed: %s", exc)
        raise GenerationError(str(exc)) from exc
    return Draft(text=text, citations=extract_citations(text, bundle))
