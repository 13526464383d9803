"""Context retrieval: relevance gate, document search and web search policy."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from . import store, web_search
from .events import PipelineEvents
from .evidence import retrieval_confidence
from .rules import CURRENT_INFO, DOCUMENT_EDITING, GENERAL_WRITING, PERSONAL_CONTENT, SEARCH_NOISE, first_match, strip_signal
from .schemas import EvidenceChunk, RouterDecision, WebResult
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")
settings = get_settings()

WEB_REQUIRED = "web_required"
DEFAULT = "default"

_PUNCTUATION_RE = re.compile(r"[^\w\s'-]")


@dataclass(frozen=True)
class GateResult:
    relevant: bool
    reason: str
    matched: Optional[str] = None


@dataclass
class RetrievalResult:
    ragChunks: List[EvidenceChunk] = field(default_factory=list)
    webResults: List[WebResult] = field(default_factory=list)
    gate: GateResult = GateResult(relevant=False, reason=DEFAULT)
    webContext: str = "no"
    webAttempted: bool = False
    currentDocumentUsed: bool = False
    linkedDocumentsUsed: List[str] = field(default_factory=list)

    @property
    def documentRelevant(self) -> bool:
        return self.gate.relevant


def relevance_gate(ask: str, decision: RouterDecision) -> GateResult:
    """Decide whether the ask is about the user's own documents."""
    if decision.needs.webContext == "required":
        return GateResult(relevant=False, reason=WEB_REQUIRED)
    ordered = (
        (CURRENT_INFO, False),
        (DOCUMENT_EDITING, True),
        (PERSONAL_CONTENT, True),
        (GENERAL_WRITING, False),
    )
    for signal, relevant in ordered:
        rule = first_match(ask, signal)
        if rule is not None:
            return GateResult(relevant=relevant, reason=signal, matched=rule.label)
    return GateResult(relevant=False, reason=DEFAULT)


def extract_search_terms(ask: str) -> str:
    """Strip writing instructions from an ask so only the subject is searched."""
    stripped = strip_signal(ask or "", SEARCH_NOISE)
    stripped = _PUNCTUATION_RE.sub(" ", stripped)
    terms = re.sub(r"\s+", " ", stripped).strip()
    return terms or (ask or "").strip()


def _linked_scopes(linked_docs: Iterable[str], session_doc_id: Optional[str]) -> List[str]:
    scopes: List[str] = []
    for doc_id in linked_docs:
        if not doc_id or doc_id == session_doc_id or doc_id in scopes:
            continue
        scopes.append(doc_id)
        if len(scopes) >= settings.max_linked_documents:
            break
    return scopes


async def _search_scope(query: str, scope_id: str) -> List[EvidenceChunk]:
    try:
        chunks = await store.search(query, settings.retrieval_top_k, scope_id)
    except Exception as exc:
        logger.warning("Evidence search failed for scope %s: %s", scope_id, exc)
        return []
    ranked = [chunk for chunk in chunks if chunk.documentId == scope_id]
    ranked.sort(key=lambda chunk: chunk.relevanceScore, reverse=True)
    return ranked


def _effective_web_context(decision: RouterDecision, gate: GateResult) -> str:
    web_context = decision.needs.webContext
    if web_context == "no" and gate.reason == CURRENT_INFO:
        # documents cannot answer current-information asks
        return "recommended"
    return web_context


async def retrieve(
    decision: RouterDecision,
    session_doc_id: Optional[str],
    linked_docs: Iterable[str],
    web_search_enabled: bool,
    ask: Optional[str] = None,
    *,
    events: Optional[PipelineEvents] = None,
) -> RetrievalResult:
    ask_text = ask if ask is not None else decision.query.semantic
    gate = relevance_gate(ask_text, decision)
    result = RetrievalResult(gate=gate, webContext=_effective_web_context(decision, gate))
    if events is not None:
        events.emit("relevance_gate", relevant=gate.relevant, reason=gate.reason, matched=gate.matched)

    if decision.needs.docContext == "none":
        if events is not None:
            events.emit("document_retrieval", "skipped", reason="doc_context_none")
    elif gate.relevant:
        query = decision.query.semantic or ask_text
        linked_scopes = _linked_scopes(linked_docs, session_doc_id)
        scopes = ([session_doc_id] if session_doc_id else []) + linked_scopes
        found = await asyncio.gather(*(_search_scope(query, scope) for scope in scopes))
        current_chunks = found[0] if session_doc_id else []
        linked_results = found[1:] if session_doc_id else found
        result.ragChunks = list(current_chunks)
        result.currentDocumentUsed = bool(current_chunks)
        for scope, chunks in zip(linked_scopes, linked_results):
            if chunks:
                result.ragChunks.extend(chunks)
                result.linkedDocumentsUsed.append(scope)
        if events is not None:
            events.emit(
                "document_retrieval",
                chunks=len(result.ragChunks),
                current=result.currentDocumentUsed,
                linked=len(result.linkedDocumentsUsed),
            )
    elif events is not None:
        events.emit("document_retrieval", "skipped", reason=gate.reason)

    confidence = retrieval_confidence(result.ragChunks)
    wants_web = result.webContext != "no" and web_search_enabled
    if wants_web and (confidence < settings.rag_min_conf_no_web or result.webContext == "required"):
        result.webAttempted = True
        result.webResults = await web_search.search(extract_search_terms(ask_text), settings.web_search_timeout_ms)
        if events is not None:
            events.emit("web_search", "ok" if result.webResults else "empty", results=len(result.webResults))
    elif events is not None:
        events.emit("web_search", "skipped", enabled=web_search_enabled, webContext=result.webContext)
    return result
