"""Evidence packing under a token budget and retrieval scoring."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .schemas import EvidenceBundle, EvidenceChunk, WebResult
from .session import approx_token_len
from .settings import get_settings

settings = get_settings()

WRITING_TASKS = frozenset({"extend", "outline", "plan", "table_create"})
WEB_COVERAGE_PER_RESULT = 0.1
WEB_COVERAGE_CAP = 0.5


@dataclass(frozen=True)
class EvidenceScores:
    confidence: float
    coverage: float


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def budgets_for(max_tokens: int) -> tuple[int, int]:
    """Split a generation budget into (document budget, web budget)."""
    document_budget = int(max_tokens * settings.context_budget_ratio)
    web_budget = max(0, max_tokens - document_budget - settings.prompt_skeleton_tokens)
    return document_budget, web_budget


def web_token_cost(result: WebResult) -> int:
    return approx_token_len(f"{result.title} {result.snippet}")


def pack(
    chunks: Sequence[EvidenceChunk],
    web_results: Sequence[WebResult],
    token_budget: int,
    web_budget: Optional[int] = None,
) -> EvidenceBundle:
    """Greedily keep whole chunks in rank order while they fit ``token_budget``.

    A chunk that does not fit is skipped and packing continues with the next
    one; chunks are never split.  Web results are packed the same way against
    ``web_budget`` (no limit when ``None``).
    """
    kept_chunks = []
    used = 0
    for chunk in chunks:
        cost = max(0, chunk.tokenCount)
        if used + cost > token_budget:
            continue
        kept_chunks.append(chunk)
        used += cost

    kept_web = []
    web_used = 0
    for result in web_results:
        cost = web_token_cost(result)
        if web_budget is not None and web_used + cost > web_budget:
            continue
        kept_web.append(result)
        web_used += cost

    return EvidenceBundle(
        chunks=kept_chunks,
        webResults=kept_web,
        tokenBudget=token_budget,
        webBudget=web_budget,
        totalTokens=used + web_used,
    )


def retrieval_confidence(chunks: Sequence[EvidenceChunk]) -> float:
    if not chunks:
        return 0.0
    average = sum(_clamp(chunk.relevanceScore) for chunk in chunks) / len(chunks)
    return _clamp(average * 2)


def score(chunks: Sequence[EvidenceChunk], web_results: Sequence[WebResult], task: str) -> EvidenceScores:
    confidence = retrieval_confidence(chunks)
    web_term = min(WEB_COVERAGE_CAP, WEB_COVERAGE_PER_RESULT * len(web_results))
    coverage = _clamp(confidence + web_term)
    if task in WRITING_TASKS and (chunks or web_results):
        coverage = max(coverage, settings.writing_coverage_floor)
    return EvidenceScores(confidence=round(confidence, 4), coverage=round(coverage, 4))
