from services.assistant import rules


def test_phrases_match_on_word_boundaries() -> None:
    assert rules.matches("Please update the totals", rules.CURRENT_INFO) is False
    assert rules.matches("What is the date of the launch?", rules.CURRENT_INFO) is True
    assert rules.matches("Show real-time numbers", rules.CURRENT_INFO) is True


def test_first_match_respects_table_order() -> None:
    rule = rules.first_match("Rewrite this paragraph please", rules.DOCUMENT_EDITING)
    assert rule is not None
    assert rule.label == "rewrite this"


def test_detect_signals_reports_routing_signals() -> None:
    signals = rules.detect_signals("Write a report on the latest earnings")
    assert rules.CURRENT_INFO in signals
    assert rules.GENERAL_WRITING in signals
    assert rules.DOCUMENT_EDITING not in signals


def test_announcement_rule_captures_payload() -> None:
    draft = "Here's the revised section:\nThe committee approved the budget after a long debate."
    rule = rules.first_match(draft, rules.ANNOUNCEMENT)
    assert rule is not None
    match = rule.search(draft)
    assert match is not None
    assert match.group("payload").startswith("The committee approved")


def test_strip_signal_removes_instruction_words() -> None:
    assert rules.strip_signal("write a report on tesla stock", rules.SEARCH_NOISE) == "tesla stock"
