"""Request pipeline: route, retrieve, pack, plan, generate, verify, decide."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from . import generator, instruction, live_edit, retriever, router, verifier
from .errors import GenerationError, OrchestrationError, RequestCancelled
from .events import LoggingEvents, PipelineEvents
from .evidence import budgets_for, pack, score
from .schemas import ChatRequest, EvidenceBundle, OrchestratorResponse, ResponseMetadata
from .session import OrchestratorSession
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")
settings = get_settings()

LIVE_EDIT_STATUS = "Content written to your document."

T = TypeVar("T")


class CancellationRegistry:
    """Maps in-flight request ids to the event that cancels them."""

    def __init__(self) -> None:
        self._events: Dict[str, asyncio.Event] = {}
        self._lock = threading.Lock()

    def register(self, request_id: str) -> asyncio.Event:
        with self._lock:
            event = asyncio.Event()
            self._events[request_id] = event
            return event

    def cancel(self, request_id: str) -> bool:
        with self._lock:
            event = self._events.get(request_id)
        if event is None:
            return False
        event.set()
        return True

    def release(self, request_id: str) -> None:
        with self._lock:
            self._events.pop(request_id, None)


cancellations = CancellationRegistry()


async def _guard(awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event]) -> T:
    """Await ``awaitable`` unless ``cancel_event`` fires first, in which case abort it."""
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelled("Request was cancelled")
    work = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    done, _pending = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    if work in done:
        waiter.cancel()
        return work.result()
    work.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await work
    raise RequestCancelled("Request was cancelled")


def _session_context(session: OrchestratorSession) -> Dict[str, Any]:
    return {
        "linkedDocumentCount": len(session.linked_documents),
        "recentTurns": session.history.render(min(settings.history_token_cap, 200)),
    }


def _link_requested(session: OrchestratorSession, request: ChatRequest, events: PipelineEvents) -> List[str]:
    rejected: List[str] = []
    for document_id in request.linkedDocuments:
        if document_id == session.document_id or session.linked_documents.contains(document_id):
            continue
        if not session.link_document(document_id):
            rejected.append(document_id)
    if rejected:
        events.emit("link_documents", "rejected", rejected=rejected, capacity=session.linked_documents.capacity)
    return rejected


def _documents_used(bundle: EvidenceBundle, current_id: Optional[str]) -> tuple[bool, List[str]]:
    current_used = False
    linked: List[str] = []
    for chunk in bundle.chunks:
        if current_id and chunk.documentId == current_id:
            current_used = True
        elif chunk.documentId not in linked:
            linked.append(chunk.documentId)
    return current_used, linked


async def process_query(
    session: OrchestratorSession,
    request: ChatRequest,
    *,
    events: Optional[PipelineEvents] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> OrchestratorResponse:
    """Run one chat request through the pipeline.

    Routing, retrieval and planning degrade locally; only a generation failure
    surfaces, as ``OrchestrationError``.  ``RequestCancelled`` is raised when
    ``cancel_event`` fires while a network call is in flight; any evidence
    gathered up to that point is dropped.
    """
    t0 = time.perf_counter()
    events = events or LoggingEvents(request.requestId)
    if request.documentId:
        session.document_id = request.documentId
    if request.conversationHistory:
        session.history.replace(request.conversationHistory)
    rejected = _link_requested(session, request, events)
    history_window = session.history.recent_window(settings.history_token_cap)

    routing = await _guard(
        router.classify(request.message, request.selection, _session_context(session)),
        cancel_event,
    )
    decision = routing.decision
    events.emit(
        "route",
        "fallback" if routing.degraded else "ok",
        task=decision.task,
        confidence=decision.confidence,
        webContext=decision.needs.webContext,
    )

    retrieval = await _guard(
        retriever.retrieve(
            decision,
            session.document_id,
            session.get_linked_documents(),
            request.useWebSearch,
            request.message,
            events=events,
        ),
        cancel_event,
    )

    document_budget, web_budget = budgets_for(request.maxTokens)
    bundle = pack(retrieval.ragChunks, retrieval.webResults, document_budget, web_budget)
    scores = score(bundle.chunks, bundle.webResults, decision.task)
    events.emit(
        "pack",
        chunks=len(bundle.chunks),
        web=len(bundle.webResults),
        totalTokens=bundle.totalTokens,
        confidence=scores.confidence,
        coverage=scores.coverage,
    )

    plan_json = await _guard(
        instruction.plan(decision, request.message, request.selection, bundle, events=events),
        cancel_event,
    )
    events.emit("plan", task=plan_json.task, contextRefs=len(plan_json.context_refs))

    current_used, linked_used = _documents_used(bundle, session.document_id)
    metadata = ResponseMetadata(
        task=decision.task,
        ragConfidence=scores.confidence,
        coverage=scores.coverage,
        sourcesUsed=len(bundle.chunks) + len(bundle.webResults),
        totalTokens=bundle.totalTokens,
        currentDocumentUsed=current_used,
        linkedDocumentsUsed=linked_used,
        linkedDocumentsRejected=rejected,
        webUsed=bool(bundle.webResults),
    )

    try:
        draft = await _guard(
            generator.generate(
                plan_json,
                bundle,
                request.message,
                request.selection,
                history_window,
                verifier.guidance(plan_json, bundle),
                precision=decision.needs.precision,
                max_tokens=request.maxTokens,
            ),
            cancel_event,
        )
    except GenerationError as exc:
        events.emit("generate", "error", error=str(exc))
        metadata.processingTimeMs = round((time.perf_counter() - t0) * 1000, 2)
        raise OrchestrationError(str(exc), metadata=metadata.model_dump()) from exc
    events.emit("generate", chars=len(draft.text), citations=len(draft.citations))

    verification = verifier.verify(draft.text, plan_json, bundle)
    events.emit("verify", "ok" if verification.isValid else "warning", warnings=len(verification.warnings))

    # a degraded route carries no structured decision
    structured = None if routing.degraded else decision
    decision_live = live_edit.decide(structured, draft.text, scores.confidence, scores.coverage, request.message)
    events.emit("live_edit", triggered=decision_live.shouldTriggerLiveEdit)

    session.history.append("user", request.message)
    session.history.append("assistant", draft.text)

    metadata.shouldTriggerLiveEdit = decision_live.shouldTriggerLiveEdit
    metadata.processingTimeMs = round((time.perf_counter() - t0) * 1000, 2)
    return OrchestratorResponse(
        content=LIVE_EDIT_STATUS if decision_live.shouldTriggerLiveEdit else draft.text,
        citations=draft.citations,
        metadata=metadata,
        verification=verification,
        liveEditContent=decision_live.extractedContent if decision_live.shouldTriggerLiveEdit else None,
    )
