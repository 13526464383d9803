import asyncio
from typing import Any, Dict, List

import pytest

from services.assistant import generator
from services.assistant.errors import GenerationError
from services.assistant.llm_client import LLMError
from services.assistant.schemas import (
    ConversationTurn,
    EvidenceBundle,
    EvidenceChunk,
    InstructionJSON,
    WebResult,
)


def _instruction(task: str = "summarize") -> InstructionJSON:
    return InstructionJSON(task=task, inputs={"target_text": "Quarterly notes"})


def _bundle() -> EvidenceBundle:
    return EvidenceBundle(
        chunks=[
            EvidenceChunk(
                id="chunk-7f3a",
                documentId="doc-42",
                text="Churn fell to 3% after onboarding changes.",
                relevanceScore=0.9,
                tokenCount=8,
                title="Q3 retention memo",
            )
        ],
        webResults=[WebResult(title="Industry churn report", url="https://research.example.org/churn", snippet="Median churn is 5%.")],
    )


@pytest.mark.parametrize(
    "task, precision, expected",
    [
        ("fact_check", "medium", 0.1),
        ("summarize", "high", 0.1),
        ("summarize", "low", 0.5),
        ("extend", "medium", 0.2),
        ("extract", "low", 0.1),
    ],
)
def test_temperature_for(task: str, precision: str, expected: float) -> None:
    assert generator.temperature_for(_instruction(task), precision) == expected


def test_system_prompt_uses_labels_not_ids() -> None:
    prompt = generator.build_system_prompt(_instruction(), _bundle(), ["Keep it short."])
    assert "[1] Q3 retention memo" in prompt
    assert "[2] Industry churn report (https://research.example.org/churn)" in prompt
    assert "chunk-7f3a" not in prompt
    assert "doc-42" not in prompt
    assert "- Keep it short." in prompt


def test_extract_citations_in_first_use_order() -> None:
    text = "Median churn is 5% [2], while ours fell to 3% [1]. Again [2]. Bogus [9]."
    assert generator.extract_citations(text, _bundle()) == [
        "Industry churn report (https://research.example.org/churn)",
        "Q3 retention memo",
    ]


def test_generate_sends_history_and_selection(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Dict[str, Any]] = []

    async def fake_complete(messages, **kwargs):
        calls.append({"messages": messages, **kwargs})
        return "Churn fell to 3% [1]."

    monkeypatch.setattr(generator, "complete", fake_complete)
    history = [ConversationTurn(role="user", content="hi"), ConversationTurn(role="assistant", content="hello")]

    draft = asyncio.run(
        generator.generate(_instruction("fact_check"), _bundle(), "check this", "Churn fell.", history, max_tokens=300)
    )

    assert draft.text == "Churn fell to 3% [1]."
    assert draft.citations == ["Q3 retention memo"]
    messages = calls[0]["messages"]
    assert [message["role"] for message in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"].endswith("Selected text:\nChurn fell.")
    assert calls[0]["temperature"] == 0.1
    assert calls[0]["max_tokens"] == 300


def test_generate_wraps_model_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    async def failing_complete(messages, **kwargs):
        raise LLMError("LLM request timed out")

    monkeypatch.setattr(generator, "complete", failing_complete)

    with pytest.raises(GenerationError, match="timed out"):
        asyncio.run(generator.generate(_instruction(), EvidenceBundle(), "anything"))
