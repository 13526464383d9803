"""Document-side edit workflow: proposals, preview, apply and discard.

Each document has at most one workflow.  A proposal snapshots the document
text it was built from; apply refuses to write when the live text no longer
matches that snapshot.
"""

from __future__ import annotations

import asyncio
import html
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from . import documents
from .errors import EditConflictError, ProposalNotFound, WorkflowStateError

logger = logging.getLogger("uvicorn.error")


class WorkflowState(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    PREVIEW_READY = "preview_ready"
    APPLYING = "applying"
    APPLIED = "applied"
    DISCARDED = "discarded"


TRANSITIONS: Dict[WorkflowState, FrozenSet[WorkflowState]] = {
    WorkflowState.IDLE: frozenset({WorkflowState.PLANNING}),
    WorkflowState.PLANNING: frozenset({WorkflowState.PREVIEW_READY, WorkflowState.IDLE}),
    WorkflowState.PREVIEW_READY: frozenset({WorkflowState.APPLYING, WorkflowState.DISCARDED}),
    WorkflowState.APPLYING: frozenset({WorkflowState.APPLIED, WorkflowState.PREVIEW_READY}),
    WorkflowState.APPLIED: frozenset({WorkflowState.PLANNING}),
    WorkflowState.DISCARDED: frozenset({WorkflowState.PLANNING}),
}


@dataclass(frozen=True)
class EditProposal:
    id: str
    documentId: str
    originalContent: str
    proposedContent: str
    summary: str
    createdAt: datetime


@dataclass
class EditWorkflow:
    document_id: str
    state: WorkflowState = WorkflowState.IDLE
    proposal: Optional[EditProposal] = None
    last_error: Optional[str] = None

    def transition(self, target: WorkflowState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise WorkflowStateError(
                f"Cannot move edit workflow for {self.document_id} from {self.state.value} to {target.value}"
            )
        logger.info("Edit workflow %s: %s -> %s", self.document_id, self.state.value, target.value)
        self.state = target


def build_proposal(original: str, content: str, selection: Optional[str] = None) -> str:
    """Replace the first occurrence of ``selection`` with ``content``, or append ``content``."""
    if selection and selection in original:
        return original.replace(selection, content, 1)
    if not original.strip():
        return content
    return f"{original.rstrip()}\n\n{content}"


def to_html(text: str) -> str:
    paragraphs = [block.strip() for block in text.split("\n\n") if block.strip()]
    return "".join(f"<p>{html.escape(block).replace(chr(10), '<br>')}</p>" for block in paragraphs)


@dataclass
class EditWorkflowManager:
    _workflows: Dict[str, EditWorkflow] = field(default_factory=dict)
    _proposal_index: Dict[str, str] = field(default_factory=dict)
    _apply_locks: Dict[str, asyncio.Lock] = field(default_factory=dict)

    def workflow(self, document_id: str) -> EditWorkflow:
        workflow = self._workflows.get(document_id)
        if workflow is None:
            workflow = EditWorkflow(document_id=document_id)
            self._workflows[document_id] = workflow
        return workflow

    def _lock_for(self, document_id: str) -> asyncio.Lock:
        lock = self._apply_locks.get(document_id)
        if lock is None:
            lock = asyncio.Lock()
            self._apply_locks[document_id] = lock
        return lock

    def _pending(self, proposal_id: str) -> Tuple[EditWorkflow, EditProposal]:
        document_id = self._proposal_index.get(proposal_id)
        workflow = self._workflows.get(document_id) if document_id else None
        proposal = workflow.proposal if workflow is not None else None
        if workflow is None or proposal is None or proposal.id != proposal_id:
            raise ProposalNotFound(f"Unknown or finished proposal {proposal_id}")
        return workflow, proposal

    def _retire(self, proposal: EditProposal) -> None:
        self._proposal_index.pop(proposal.id, None)

    async def propose(
        self,
        document_id: str,
        user_id: Optional[str],
        content: str,
        *,
        selection: Optional[str] = None,
        summary: str = "",
    ) -> EditProposal:
        workflow = self.workflow(document_id)
        workflow.transition(WorkflowState.PLANNING)
        try:
            snapshot = await documents.get_document(document_id, user_id)
        except Exception as exc:
            workflow.last_error = str(exc)
            workflow.transition(WorkflowState.IDLE)
            raise
        proposal = EditProposal(
            id=uuid.uuid4().hex,
            documentId=document_id,
            originalContent=snapshot.plainText,
            proposedContent=build_proposal(snapshot.plainText, content, selection),
            summary=summary or ("Replace selection" if selection else "Insert generated content"),
            createdAt=datetime.now(timezone.utc),
        )
        if workflow.proposal is not None:
            self._retire(workflow.proposal)
        workflow.proposal = proposal
        workflow.last_error = None
        self._proposal_index[proposal.id] = document_id
        workflow.transition(WorkflowState.PREVIEW_READY)
        return proposal

    async def apply(self, proposal_id: str, user_id: Optional[str]) -> EditProposal:
        workflow, proposal = self._pending(proposal_id)
        workflow.transition(WorkflowState.APPLYING)
        lock = self._lock_for(workflow.document_id)
        async with lock:
            try:
                live = await documents.get_document(workflow.document_id, user_id)
                if live.plainText != proposal.originalContent:
                    raise EditConflictError(
                        f"Document {workflow.document_id} changed after proposal {proposal_id} was created"
                    )
                await documents.update_document(
                    workflow.document_id,
                    user_id,
                    {"plainText": proposal.proposedContent, "htmlContent": to_html(proposal.proposedContent)},
                )
            except Exception as exc:
                workflow.last_error = str(exc)
                workflow.transition(WorkflowState.PREVIEW_READY)
                raise
        workflow.transition(WorkflowState.APPLIED)
        self._retire(proposal)
        # only one apply per document can be in flight, so the lock has no waiters here
        self._apply_locks.pop(workflow.document_id, None)
        return proposal

    def discard(self, proposal_id: str) -> EditProposal:
        workflow, proposal = self._pending(proposal_id)
        workflow.transition(WorkflowState.DISCARDED)
        self._retire(proposal)
        return proposal

    def pending_count(self) -> int:
        return len(self._proposal_index)

    def clear(self) -> None:
        self._workflows.clear()
        self._proposal_index.clear()
        self._apply_locks.clear()


workflows = EditWorkflowManager()
