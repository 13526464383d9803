from services.assistant import live_edit
from services.assistant.schemas import Needs, Query, RouterDecision

LONG_PARAGRAPH = (
    "Our onboarding flow now walks new customers through workspace setup, invites and billing "
    "in a single guided session, which cut first-week support tickets noticeably."
)


def _decision(task: str = "rewrite") -> RouterDecision:
    return RouterDecision(
        task=task,
        confidence=0.9,
        needs=Needs(selectionText=True, docContext="current", webContext="no", precision="medium"),
        query=Query(semantic="rewrite"),
    )


def test_editing_task_with_good_evidence_triggers() -> None:
    result = live_edit.decide(_decision("rewrite"), LONG_PARAGRAPH, confidence=0.8, coverage=0.6)
    assert result.shouldTriggerLiveEdit is True
    assert result.extractedContent == LONG_PARAGRAPH


def test_thresholds_are_strict() -> None:
    assert not live_edit.decide(_decision(), LONG_PARAGRAPH, confidence=0.5, coverage=0.9).shouldTriggerLiveEdit
    assert not live_edit.decide(_decision(), LONG_PARAGRAPH, confidence=0.9, coverage=0.4).shouldTriggerLiveEdit


def test_non_editing_task_never_triggers() -> None:
    result = live_edit.decide(_decision("summarize"), LONG_PARAGRAPH, confidence=0.9, coverage=0.9)
    assert result.shouldTriggerLiveEdit is False
    assert result.extractedContent == ""


def test_short_content_never_triggers() -> None:
    draft = "Here's the rewrite:\nOnboarding is now one guided session."
    result = live_edit.decide(_decision(), draft, confidence=0.9, coverage=0.9)
    assert result.shouldTriggerLiveEdit is False


def test_announced_payload_is_extracted() -> None:
    payload = "Onboarding is now a single guided session covering setup and billing."
    draft = f"Here's the rewrite:\n{payload}"
    assert len(draft) < 100
    result = live_edit.decide(_decision(), draft, confidence=0.9, coverage=0.9)
    assert result.shouldTriggerLiveEdit is True
    assert result.extractedContent == payload


def test_long_draft_is_kept_when_extraction_is_short() -> None:
    draft = (
        "I'll write a short note for the operations team covering the quarterly planning cycle and its owners:\n"
        "Planning starts in week two."
    )
    assert len(draft) > 100
    assert live_edit.extract_content(draft) == draft


def test_heuristic_path_uses_writing_intent() -> None:
    result = live_edit.decide(None, LONG_PARAGRAPH, confidence=0.0, coverage=0.0, ask="Write a paragraph about onboarding")
    assert result.shouldTriggerLiveEdit is True


def test_heuristic_path_ignores_plain_answers() -> None:
    result = live_edit.decide(None, LONG_PARAGRAPH, confidence=0.9, coverage=0.9, ask="How did onboarding change?")
    assert result.shouldTriggerLiveEdit is False


def test_heuristic_path_accepts_structured_drafts() -> None:
    draft = "# Onboarding\n\n" + "\n".join(f"- Step {index}: {LONG_PARAGRAPH}" for index in range(4))
    assert live_edit.is_structured(draft)
    result = live_edit.decide(None, draft, confidence=0.0, coverage=0.0, ask="thoughts?")
    assert result.shouldTriggerLiveEdit is True
    assert result.extractedContent == draft


def test_short_plain_text_extracts_nothing() -> None:
    assert live_edit.extract_content("Sounds good.") == ""
