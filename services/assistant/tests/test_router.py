import asyncio
import json
from typing import Any, Dict, List

import pytest

from services.assistant import router
from services.assistant.schemas import TASK_KINDS


def _payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "task": "summarize",
        "confidence": 0.82,
        "needs": {"selectionText": False, "docContext": "current", "webContext": "no", "precision": "medium"},
        "query": {"semantic": "summary of the quarterly report", "keywords": ["quarterly", "report"]},
        "targets": [{"type": "all"}],
    }
    payload.update(overrides)
    return payload


def _fake_complete(text: str, calls: List[Dict[str, Any]] | None = None):
    async def fake(messages: List[Dict[str, str]], **kwargs: Any) -> str:
        if calls is not None:
            calls.append({"messages": messages, **kwargs})
        return text

    return fake


def test_route_parses_valid_decision(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Dict[str, Any]] = []
    monkeypatch.setattr(router, "complete", _fake_complete(json.dumps(_payload()), calls))

    decision = asyncio.run(router.route("Summarize the quarterly report"))

    assert decision.task == "summarize"
    assert decision.confidence == pytest.approx(0.82)
    assert decision.needs.docContext == "current"
    assert calls[0]["temperature"] == pytest.approx(0.1)
    assert calls[0]["response_format"] == {"type": "json_object"}


def test_route_accepts_snake_case_needs(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = _payload(
        needs={"selection_text": True, "doc_context": "linked", "web_context": "recommended", "precision": "high"}
    )
    monkeypatch.setattr(router, "complete", _fake_complete(json.dumps(payload)))

    decision = asyncio.run(router.route("Compare with my linked notes", "some text"))

    assert decision.needs.selectionText is True
    assert decision.needs.docContext == "linked"
    assert decision.needs.webContext == "recommended"


def test_route_clamps_confidence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(router, "complete", _fake_complete(json.dumps(_payload(confidence=1.7))))
    decision = asyncio.run(router.route("Summarize"))
    assert decision.confidence == 1.0

    monkeypatch.setattr(router, "complete", _fake_complete(json.dumps(_payload(confidence=-3))))
    decision = asyncio.run(router.route("Summarize"))
    assert decision.confidence == 0.0


def test_route_recovers_json_wrapped_in_prose(monkeypatch: pytest.MonkeyPatch) -> None:
    text = "Sure! Here is the routing:\n```json\n" + json.dumps(_payload(task="outline")) + "\n```"
    monkeypatch.setattr(router, "complete", _fake_complete(text))

    decision = asyncio.run(router.route("Outline the report"))

    assert decision.task == "outline"


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        json.dumps(_payload(task="write_poem")),
        json.dumps({"task": "rewrite"}),
        json.dumps(_payload(confidence="high")),
        "[1, 2, 3]",
    ],
)
def test_malformed_output_yields_fallback(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setattr(router, "complete", _fake_complete(raw))

    decision = asyncio.run(router.route("Make the intro paragraph punchier", "Our intro."))

    assert decision.task == "rewrite"
    assert decision.task in TASK_KINDS
    assert decision.confidence == 0.5
    assert decision.needs.selectionText is True
    assert decision.needs.docContext == "current"
    assert decision.needs.webContext == "no"
    assert decision.needs.precision == "medium"
    assert decision.query.semantic == "Make the intro paragraph punchier"
    assert decision.query.keywords == ["Make", "intro", "paragraph", "punchier"]


def test_llm_error_yields_fallback(monkeypatch: pytest.MonkeyPatch) -> None:
    async def failing(*_args: Any, **_kwargs: Any) -> str:
        raise RuntimeError("model unavailable")

    monkeypatch.setattr(router, "complete", failing)

    decision = asyncio.run(router.route("Tighten this"))

    assert decision.task == "rewrite"
    assert decision.needs.selectionText is False
    assert decision.targets[0].type == "selection"
    assert decision.targets[0].value == "all"


@pytest.mark.parametrize("raw, degraded", [(json.dumps(_payload()), False), ("not json", True)])
def test_classify_reports_degraded_routing(monkeypatch: pytest.MonkeyPatch, raw: str, degraded: bool) -> None:
    monkeypatch.setattr(router, "complete", _fake_complete(raw))

    routing = asyncio.run(router.classify("Summarize the quarterly report"))

    assert routing.degraded is degraded
    assert routing.decision.task == ("rewrite" if degraded else "summarize")


def test_decision_is_immutable() -> None:
    decision = router.fallback_decision("Rewrite it")
    with pytest.raises(Exception):
        decision.task = "summarize"  # type: ignore[misc]


def test_route_includes_keyword_signals(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: List[Dict[str, Any]] = []
    monkeypatch.setattr(router, "complete", _fake_complete(json.dumps(_payload()), calls))

    asyncio.run(router.route("What is the latest stock price?"))

    user_block = calls[0]["messages"][1]["content"]
    assert "current_info" in user_block
