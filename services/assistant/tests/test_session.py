from services.assistant.schemas import ConversationTurn
from services.assistant.session import (
    ConversationHistory,
    LinkedDocumentSet,
    OrchestratorSession,
    SessionStore,
    approx_token_len,
)


def test_sixth_link_is_rejected() -> None:
    session = OrchestratorSession(session_id="s1", document_id="current")
    original = [f"doc-{index}" for index in range(5)]
    assert all(session.link_document(document_id) for document_id in original)

    assert session.link_document("doc-5") is False
    assert session.get_linked_documents() == original


def test_relinking_is_idempotent() -> None:
    linked = LinkedDocumentSet(capacity=2)
    assert linked.add("a") is True
    assert linked.add("a") is True
    assert len(linked) == 1
    assert linked.add("b") is True
    assert linked.add("a") is True
    assert linked.add("c") is False


def test_unlink_reports_whether_removed() -> None:
    session = OrchestratorSession(session_id="s1")
    session.link_document("doc-1")
    assert session.unlink_document("doc-1") is True
    assert session.unlink_document("doc-1") is False
    assert session.get_linked_documents() == []
    assert session.link_document("doc-2") is True


def test_current_document_is_not_linked() -> None:
    session = OrchestratorSession(session_id="s1", document_id="current")
    assert session.link_document("current") is False
    assert "current" not in session.linked_documents


def test_sessions_do_not_share_links() -> None:
    store = SessionStore()
    first = store.get_or_create("one")
    second = store.get_or_create("two")
    first.link_document("doc-1")
    assert second.get_linked_documents() == []
    assert store.get_or_create("one") is first


def test_switching_document_unlinks_it() -> None:
    store = SessionStore()
    session = store.get_or_create("one", document_id="doc-a")
    session.link_document("doc-b")
    store.get_or_create("one", document_id="doc-b")
    assert session.document_id == "doc-b"
    assert session.get_linked_documents() == []


def test_history_window_keeps_newest_turns_within_cap() -> None:
    history = ConversationHistory(max_turns=10)
    history.append("user", "one two three four")
    history.append("assistant", "five six")
    history.append("user", "seven eight nine")

    window = history.recent_window(5)

    assert [turn.content for turn in window] == ["five six", "seven eight nine"]


def test_history_window_keeps_latest_turn_even_when_long() -> None:
    history = ConversationHistory()
    history.append("user", "a " * 50)
    assert len(history.recent_window(10)) == 1
    assert history.recent_window(0) == []


def test_history_is_bounded_and_replaceable() -> None:
    history = ConversationHistory(max_turns=2)
    for index in range(4):
        history.append("user", f"turn {index}")
    assert len(history) == 2
    history.replace([ConversationTurn(role="assistant", content="fresh")])
    assert history.render(100) == "Assistant: fresh"


def test_approx_token_len() -> None:
    assert approx_token_len(None) == 0
    assert approx_token_len("three word phrase") == 3


def test_store_evicts_least_recently_used_session() -> None:
    store = SessionStore(max_sessions=3)
    for name in ("a", "b", "c"):
        store.get_or_create(name)
    store.get("a")

    store.get_or_create("d")

    assert len(store) == 3
    assert store.get("b") is None
    assert store.get("a") is not None


def test_many_sessions_stay_bounded() -> None:
    store = SessionStore(max_sessions=10)
    for index in range(50):
        store.get_or_create(f"session-{index}").history.append("user", "hello there")
    assert len(store) == 10


def test_linked_capacity_never_exceeds_five() -> None:
    assert LinkedDocumentSet(capacity=50).capacity == 5
    assert OrchestratorSession(session_id="s1").linked_documents.capacity == 5
