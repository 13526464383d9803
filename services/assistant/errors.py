"""Exception types raised across the assistant pipeline."""

from __future__ import annotations

from typing import Any, Dict, Optional

APOLOGY_MESSAGE = "I'm sorry, I wasn't able to generate a response right now. Please try again."


class AssistantError(Exception):
    """Base class for errors surfaced to the HTTP layer."""


class GenerationError(AssistantError):
    """The language model call that drafts the answer failed."""


class OrchestrationError(AssistantError):
    """Request-level failure carrying the user-facing apology and diagnostics."""

    def __init__(self, details: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(details)
        self.details = details
        self.message = APOLOGY_MESSAGE
        self.metadata = metadata or {}


class RequestCancelled(AssistantError):
    """The caller cancelled the request while a network call was in flight."""


class WorkflowStateError(AssistantError):
    """An edit workflow transition is not allowed from the current state."""


class EditConflictError(AssistantError):
    """The document changed after the edit proposal was created."""


class ProposalNotFound(AssistantError):
    pass


class DocumentStoreError(AssistantError):
    pass
