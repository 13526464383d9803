import asyncio
import json
from typing import List

import httpx
import pytest

from services.assistant import llm_client
from services.assistant.llm_client import LLMError


def _patch_transport(monkeypatch: pytest.MonkeyPatch, handler) -> None:
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(llm_client.httpx, "AsyncClient", client_factory)


def _complete(**overrides):
    kwargs = {"model": "gpt-4o-mini", "temperature": 0.1, "max_tokens": 50, "purpose": "router"}
    kwargs.update(overrides)
    return asyncio.run(llm_client.complete([{"role": "user", "content": "hi"}], **kwargs))


def test_complete_returns_stripped_text(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: List[httpx.Request] = []
    monkeypatch.setattr(llm_client.settings, "llm_api_key", "secret")

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "  {\"ok\": true}\n"}}]})

    _patch_transport(monkeypatch, handler)

    assert _complete(response_format={"type": "json_object"}) == '{"ok": true}'
    body = json.loads(seen[0].content)
    assert body["response_format"] == {"type": "json_object"}
    assert body["max_tokens"] == 50
    assert seen[0].headers["Authorization"] == "Bearer secret"
    assert seen[0].url.path == "/v1/chat/completions"


@pytest.mark.parametrize(
    "response, message",
    [
        (httpx.Response(503, text="overloaded"), "status 503"),
        (httpx.Response(200, json={"choices": []}), "missing choices"),
        (httpx.Response(200, json={"choices": [{"message": {"content": "  "}}]}), "missing text"),
        (httpx.Response(200, json=["not", "a", "dict"]), "malformed"),
    ],
)
def test_complete_raises_on_bad_responses(monkeypatch: pytest.MonkeyPatch, response: httpx.Response, message: str) -> None:
    _patch_transport(monkeypatch, lambda request: response)

    with pytest.raises(LLMError, match=message):
        _complete()


def test_complete_maps_timeouts(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    _patch_transport(monkeypatch, handler)

    with pytest.raises(LLMError, match="timed out"):
        _complete(purpose="generate")
