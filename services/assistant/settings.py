"""Configuration helpers for the assistant orchestration service."""

from __future__ import annotations

import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv()


DEFAULT_CHAT_MODEL = "gpt-4o"
DEFAULT_ROUTING_MODEL = "gpt-4o-mini"


class Settings(BaseSettings):
    model_config = {"protected_namespaces": ()}
    app_name: str = Field(default="Document Assistant Service")
    llm_url: str = Field(default="http://llm-api:8000")
    llm_api_key: str | None = None
    chat_model: str = Field(default=DEFAULT_CHAT_MODEL)
    routing_model: str = Field(default=DEFAULT_ROUTING_MODEL)
    llm_request_timeout_s: float = Field(default=45.0, gt=0.0)
    vector_url: str = Field(default="http://vector:8000")
    document_store_url: str = Field(default="http://documents:8000")
    request_timeout_s: float = Field(default=15.0, gt=0.0)
    web_search_url: str | None = None
    web_search_timeout_ms: int = Field(default=3_500, ge=3_500, le=5_000)
    web_max_results: int = Field(default=8, gt=0)
    retrieval_top_k: int = Field(default=15, gt=0)
    max_linked_documents: int = Field(default=5, gt=0, le=5)
    default_max_tokens: int = Field(default=2_000, gt=0)
    context_budget_ratio: float = Field(default=0.7, gt=0.0, le=1.0)
    prompt_skeleton_tokens: int = Field(default=250, ge=0)
    rag_min_conf_no_web: float = Field(default=0.7, ge=0.0, le=1.0)
    live_edit_min_chars: int = Field(default=50, ge=0)
    live_edit_min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    live_edit_min_coverage: float = Field(default=0.4, ge=0.0, le=1.0)
    writing_coverage_floor: float = Field(default=0.3, ge=0.0, le=1.0)
    router_max_tokens: int = Field(default=400, gt=0)
    planner_max_tokens: int = Field(default=600, gt=0)
    history_token_cap: int = Field(default=1_200, ge=0)
    history_max_turns: int = Field(default=40, gt=0)
    max_sessions: int = Field(default=1_000, gt=0)


def _coerce_float(env_name: str, default: float) -> float:
    raw = os.getenv(env_name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:  # pragma: no cover
        raise RuntimeError(f"Invalid float for {env_name}: {raw}") from exc


def _coerce_int(env_name: str, default: int) -> int:
    raw = os.getenv(env_name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:  # pragma: no cover
        raise RuntimeError(f"Invalid integer for {env_name}: {raw}") from exc


def _coerce_optional(env_name: str) -> str | None:
    raw = os.getenv(env_name)
    return raw if raw else None


def _clamp_web_timeout(raw_ms: int) -> int:
    # the web collaborator is only ever given 3.5-5 seconds
    return max(3_500, min(5_000, raw_ms))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        llm_url=os.getenv("LLM_URL", "http://llm-api:8000"),
        llm_api_key=_coerce_optional("LLM_API_KEY"),
        chat_model=os.getenv("CHAT_MODEL", DEFAULT_CHAT_MODEL),
        routing_model=os.getenv("ROUTING_MODEL", DEFAULT_ROUTING_MODEL),
        llm_request_timeout_s=_coerce_float("LLM_REQUEST_TIMEOUT_S", 45.0),
        vector_url=os.getenv("VECTOR_URL", "http://vector:8000"),
        document_store_url=os.getenv("DOCUMENT_STORE_URL", "http://documents:8000"),
        request_timeout_s=_coerce_float("REQUEST_TIMEOUT_S", 15.0),
        web_search_url=_coerce_optional("WEB_SEARCH_URL"),
        web_search_timeout_ms=_clamp_web_timeout(_coerce_int("WEB_SEARCH_TIMEOUT_MS", 3_500)),
        web_max_results=_coerce_int("WEB_MAX_RESULTS", 8),
        retrieval_top_k=_coerce_int("RETRIEVAL_TOP_K", 15),
        max_linked_documents=_coerce_int("MAX_LINKED_DOCUMENTS", 5),
        default_max_tokens=_coerce_int("DEFAULT_MAX_TOKENS", 2_000),
        context_budget_ratio=_coerce_float("CONTEXT_BUDGET_RATIO", 0.7),
        prompt_skeleton_tokens=_coerce_int("PROMPT_SKELETON_TOKENS", 250),
        rag_min_conf_no_web=_coerce_float("RAG_MIN_CONF_NO_WEB", 0.7),
        live_edit_min_chars=_coerce_int("LIVE_EDIT_MIN_CHARS", 50),
        live_edit_min_confidence=_coerce_float("LIVE_EDIT_MIN_CONFIDENCE", 0.5),
        live_edit_min_coverage=_coerce_float("LIVE_EDIT_MIN_COVERAGE", 0.4),
        writing_coverage_floor=_coerce_float("WRITING_COVERAGE_FLOOR", 0.3),
        router_max_tokens=_coerce_int("ROUTER_MAX_TOKENS", 400),
        planner_max_tokens=_coerce_int("PLANNER_MAX_TOKENS", 600),
        history_token_cap=_coerce_int("HISTORY_TOKEN_CAP", 1_200),
        history_max_turns=_coerce_int("HISTORY_MAX_TURNS", 40),
        max_sessions=_coerce_int("MAX_SESSIONS", 1_000),
    )
