"""Per-conversation session state: linked documents and conversation history."""

from __future__ import annotations

import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, Iterator, List, Optional

from .schemas import ConversationTurn
from .settings import get_settings

settings = get_settings()

LINKED_DOCUMENT_CAPACITY = 5


def approx_token_len(text: str | None) -> int:
    """Best-effort token approximation used for budgeting and windowing."""
    if not text:
        return 0
    return max(1, len(text.strip().split()))


class LinkedDocumentSet:
    """Insertion-ordered set of document ids with a hard capacity."""

    def __init__(self, capacity: int = LINKED_DOCUMENT_CAPACITY) -> None:
        self.capacity = min(capacity, LINKED_DOCUMENT_CAPACITY)
        self._ids: Dict[str, None] = {}

    def add(self, document_id: str) -> bool:
        """Link a document. Returns False and leaves the set unchanged when it is full."""
        if document_id in self._ids:
            return True
        if len(self._ids) >= self.capacity:
            return False
        self._ids[document_id] = None
        return True

    def remove(self, document_id: str) -> bool:
        if document_id not in self._ids:
            return False
        del self._ids[document_id]
        return True

    def contains(self, document_id: str) -> bool:
        return document_id in self._ids

    def as_list(self) -> List[str]:
        return list(self._ids)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))


class ConversationHistory:
    def __init__(self, max_turns: int = 40) -> None:
        self._turns: Deque[ConversationTurn] = deque(maxlen=max_turns)

    def append(self, role: str, content: str) -> None:
        if content:
            self._turns.append(ConversationTurn(role=role, content=content))

    def extend(self, turns: Iterable[ConversationTurn]) -> None:
        for turn in turns:
            self.append(turn.role, turn.content)

    def replace(self, turns: Iterable[ConversationTurn]) -> None:
        self._turns.clear()
        self.extend(turns)

    def __len__(self) -> int:
        return len(self._turns)

    def recent_window(self, token_cap: int) -> List[ConversationTurn]:
        """Return the newest turns that fit in ``token_cap``, oldest first."""
        if token_cap <= 0 or not self._turns:
            return []
        budget = token_cap
        collected: List[ConversationTurn] = []
        for turn in reversed(self._turns):
            tokens = approx_token_len(turn.content)
            if budget - tokens < 0 and collected:
                break
            budget -= tokens
            collected.append(turn)
            if budget <= 0:
                break
        return list(reversed(collected))

    def render(self, token_cap: int) -> str:
        return "\n".join(f"{turn.role.title()}: {turn.content}" for turn in self.recent_window(token_cap))


@dataclass
class OrchestratorSession:
    """State owned by one editing conversation; never shared across sessions."""

    session_id: str
    user_id: Optional[str] = None
    document_id: Optional[str] = None
    linked_documents: LinkedDocumentSet = field(default_factory=LinkedDocumentSet)
    history: ConversationHistory = field(
        default_factory=lambda: ConversationHistory(settings.history_max_turns)
    )

    def link_document(self, document_id: str) -> bool:
        if document_id == self.document_id:
            return False
        return self.linked_documents.add(document_id)

    def unlink_document(self, document_id: str) -> bool:
        return self.linked_documents.remove(document_id)

    def get_linked_documents(self) -> List[str]:
        return self.linked_documents.as_list()


class SessionStore:
    """Thread-safe registry of live sessions keyed by session id.

    Holds at most ``max_sessions``; the least recently used session is evicted
    when a new one would exceed the bound.
    """

    def __init__(self, max_sessions: Optional[int] = None) -> None:
        self.max_sessions = max_sessions or settings.max_sessions
        self._sessions: OrderedDict[str, OrchestratorSession] = OrderedDict()
        self._lock = threading.Lock()

    def get_or_create(
        self,
        session_id: str,
        *,
        user_id: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> OrchestratorSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = OrchestratorSession(session_id=session_id, user_id=user_id, document_id=document_id)
                self._sessions[session_id] = session
                while len(self._sessions) > self.max_sessions:
                    self._sessions.popitem(last=False)
            else:
                self._sessions.move_to_end(session_id)
                if document_id and session.document_id != document_id:
                    session.document_id = document_id
                    session.linked_documents.remove(document_id)
            return session

    def get(self, session_id: str) -> Optional[OrchestratorSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def drop(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


sessions = SessionStore()
