"""FastAPI entrypoint for the document assistant service."""

from __future__ import annotations

import uuid
from typing import Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, status
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from pydantic import BaseModel, Field

from .edit_workflow import EditProposal, WorkflowState, workflows
from .errors import (
    DocumentStoreError,
    EditConflictError,
    OrchestrationError,
    ProposalNotFound,
    RequestCancelled,
    WorkflowStateError,
)
from .events import LoggingEvents
from .handler import cancellations, process_query
from .schemas import ChatRequest, ChatResponse
from .session import OrchestratorSession, sessions
from .settings import get_settings

settings = get_settings()
app = FastAPI(title=settings.app_name)
Instrumentator().instrument(app).expose(app)


class LinkRequest(BaseModel):
    documentId: str = Field(min_length=1)


class LinkResponse(BaseModel):
    linked: bool
    linkedDocuments: List[str]


class UnlinkResponse(BaseModel):
    removed: bool
    linkedDocuments: List[str]


class ProposeRequest(BaseModel):
    documentId: str = Field(min_length=1)
    content: str = Field(min_length=1)
    selection: Optional[str] = None
    summary: str = ""


class ProposalResponse(BaseModel):
    proposalId: str
    documentId: str
    state: str
    summary: str
    originalContent: str
    proposedContent: str


def _proposal_response(proposal: EditProposal, state: WorkflowState) -> ProposalResponse:
    return ProposalResponse(
        proposalId=proposal.id,
        documentId=proposal.documentId,
        state=state.value,
        summary=proposal.summary,
        originalContent=proposal.originalContent,
        proposedContent=proposal.proposedContent,
    )


@app.post("/v1/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, x_user_id: Optional[str] = Header(default=None)) -> ChatResponse | JSONResponse:
    request_id = request.requestId or uuid.uuid4().hex
    request = request.model_copy(update={"requestId": request_id})
    session_key = request.sessionId or request.documentId
    if session_key:
        session = sessions.get_or_create(session_key, user_id=x_user_id, document_id=request.documentId)
    else:
        # anonymous chats keep no state beyond the request
        session = OrchestratorSession(session_id=request_id, user_id=x_user_id)
    cancel_event = cancellations.register(request_id)
    try:
        response = await process_query(
            session,
            request,
            events=LoggingEvents(request_id),
            cancel_event=cancel_event,
        )
    except OrchestrationError as exc:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={
                "error": "Failed to generate a response",
                "details": exc.details,
                "message": exc.message,
                "metadata": {**exc.metadata, "shouldTriggerLiveEdit": False},
            },
        )
    except RequestCancelled:
        return JSONResponse(status_code=499, content={"error": "Request cancelled", "requestId": request_id})
    finally:
        cancellations.release(request_id)
    return ChatResponse.from_response(response)


@app.post("/v1/chat/{request_id}/cancel")
async def cancel_chat(request_id: str) -> Dict[str, bool]:
    return {"cancelled": cancellations.cancel(request_id)}


@app.get("/v1/sessions/{session_id}/links", response_model=List[str])
async def list_links(session_id: str) -> List[str]:
    session = sessions.get(session_id)
    return session.get_linked_documents() if session else []


@app.post("/v1/sessions/{session_id}/links", response_model=LinkResponse)
async def link_document(session_id: str, body: LinkRequest, x_user_id: Optional[str] = Header(default=None)) -> LinkResponse:
    session = sessions.get_or_create(session_id, user_id=x_user_id)
    linked = session.link_document(body.documentId)
    return LinkResponse(linked=linked, linkedDocuments=session.get_linked_documents())


@app.delete("/v1/sessions/{session_id}/links/{document_id}", response_model=UnlinkResponse)
async def unlink_document(session_id: str, document_id: str) -> UnlinkResponse:
    session = sessions.get(session_id)
    if session is None:
        return UnlinkResponse(removed=False, linkedDocuments=[])
    removed = session.unlink_document(document_id)
    return UnlinkResponse(removed=removed, linkedDocuments=session.get_linked_documents())


@app.post("/v1/edits/propose", response_model=ProposalResponse)
async def propose_edit(body: ProposeRequest, x_user_id: Optional[str] = Header(default=None)) -> ProposalResponse:
    try:
        proposal = await workflows.propose(
            body.documentId,
            x_user_id,
            body.content,
            selection=body.selection,
            summary=body.summary,
        )
    except WorkflowStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DocumentStoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _proposal_response(proposal, WorkflowState.PREVIEW_READY)


@app.post("/v1/edits/{proposal_id}/apply", response_model=ProposalResponse)
async def apply_edit(proposal_id: str, x_user_id: Optional[str] = Header(default=None)) -> ProposalResponse:
    try:
        proposal = await workflows.apply(proposal_id, x_user_id)
    except ProposalNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (WorkflowStateError, EditConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DocumentStoreError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _proposal_response(proposal, WorkflowState.APPLIED)


@app.post("/v1/edits/{proposal_id}/discard", response_model=ProposalResponse)
async def discard_edit(proposal_id: str) -> ProposalResponse:
    try:
        proposal = workflows.discard(proposal_id)
    except ProposalNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except WorkflowStateError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _proposal_response(proposal, WorkflowState.DISCARDED)


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}
