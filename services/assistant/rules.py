"""Keyword and phrase rules shared by routing, the relevance gate and live-edit detection.

Every heuristic keyword list lives in ``RULES`` as a ``Rule(signal, pattern)``
entry.  Consumers ask for a signal by name instead of keeping their own lists.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Tuple

CURRENT_INFO = "current_info"
DOCUMENT_EDITING = "document_editing"
PERSONAL_CONTENT = "personal_content"
GENERAL_WRITING = "general_writing"
WRITING_INTENT = "writing_intent"
ANNOUNCEMENT = "announcement"
STRUCTURE_MARKER = "structure_marker"
SEARCH_NOISE = "search_noise"

# signals surfaced to the router as hints, in the order they are reported
ROUTING_SIGNALS = (CURRENT_INFO, DOCUMENT_EDITING, PERSONAL_CONTENT, GENERAL_WRITING)


@dataclass(frozen=True)
class Rule:
    signal: str
    pattern: str
    label: str

    def search(self, text: str) -> Optional[re.Match[str]]:
        return _compile(self.pattern).search(text)


@lru_cache(maxsize=None)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE | re.MULTILINE | re.DOTALL)


def _word(phrase: str) -> str:
    escaped = r"\s+".join(re.escape(part) for part in phrase.split())
    return rf"(?<![\w-]){escaped}(?![\w-])"


def _words(signal: str, phrases: Iterable[str]) -> List[Rule]:
    return [Rule(signal=signal, pattern=_word(phrase), label=phrase) for phrase in phrases]


def _announcement(phrase: str) -> Rule:
    # phrase at the start of a line, the rest of that line up to an optional colon, then the payload
    escaped = re.escape(phrase).replace("'", "['’]")
    boundary = r"\b" if phrase[-1].isalnum() else ""
    pattern = rf"^[ \t]*{escaped}{boundary}[^\n:]*:?[ \t]*\n?(?P<payload>.+)"
    return Rule(signal=ANNOUNCEMENT, pattern=pattern, label=phrase)


def _marker(label: str, pattern: str) -> Rule:
    return Rule(signal=STRUCTURE_MARKER, pattern=pattern, label=label)


RULES: Tuple[Rule, ...] = tuple(
    _words(
        CURRENT_INFO,
        (
            "current",
            "currently",
            "latest",
            "recent",
            "today",
            "now",
            "2024",
            "2025",
            "news",
            "stock",
            "price",
            "market",
            "financial",
            "earnings",
            "weather",
            "time",
            "date",
            "live",
            "real-time",
            "real data",
        ),
    )
    + _words(
        DOCUMENT_EDITING,
        (
            "edit this",
            "rewrite this",
            "modify this",
            "change this",
            "in this document",
            "in my document",
            "in the document",
            "this paragraph",
            "this section",
            "this text",
        ),
    )
    + _words(
        PERSONAL_CONTENT,
        (
            "my notes",
            "my document",
            "my file",
            "my content",
            "what did i write",
            "what i wrote",
            "my analysis",
            "document",
            "section",
            "paragraph",
            "heading",
            "chapter",
        ),
    )
    + _words(
        GENERAL_WRITING,
        ("write", "create", "generate", "compose", "draft", "analysis", "report", "article", "story", "essay"),
    )
    + _words(WRITING_INTENT, ("write", "create", "generate", "compose", "draft", "report"))
    + [
        _announcement(phrase)
        for phrase in (
            "I'll write",
            "I'm writing",
            "Let me write",
            "Here's the",
            "Here is the",
            "I'll create",
            "I'm creating",
            "I'll add",
            "I'm adding",
            "Let me add",
            "I'll insert",
            "I'm inserting",
            "Writing:",
            "Creating:",
            "Adding:",
            "I'll provide",
            "I'm providing",
            "Let me provide",
            "Here's a",
            "Here is a",
            "I'll draft",
            "I'm drafting",
        )
    ]
    + [
        _marker("heading", r"#"),
        _marker("bold", r"\*\*"),
        _marker("numbered_list", r"\d+\.\s"),
        _marker("bullet", r"(?:^|\s)[-*]\s"),
        _marker("table_pipe", r"\|"),
    ]
    + _words(
        SEARCH_NOISE,
        (
            "write",
            "create",
            "generate",
            "compose",
            "draft",
            "make",
            "build",
            "report",
            "document",
            "analysis",
            "summary",
            "essay",
            "article",
            "use",
            "get",
            "find",
            "search",
            "look up",
            "about",
            "on",
            "real",
            "current",
            "latest",
            "recent",
            "up-to-date",
            "metrics",
            "data",
            "information",
            "facts",
            "what",
            "is",
            "are",
            "a",
            "an",
            "the",
            "of",
        ),
    )
)


def rules_for(signal: str) -> Tuple[Rule, ...]:
    return tuple(rule for rule in RULES if rule.signal == signal)


def first_match(text: str, signal: str) -> Optional[Rule]:
    """Return the first rule of ``signal`` (in table order) that matches ``text``."""
    if not text:
        return None
    for rule in rules_for(signal):
        if rule.search(text):
            return rule
    return None


def matches(text: str, signal: str) -> bool:
    return first_match(text, signal) is not None


def detect_signals(text: str, signals: Sequence[str] = ROUTING_SIGNALS) -> List[str]:
    return [signal for signal in signals if matches(text, signal)]


def strip_signal(text: str, signal: str) -> str:
    """Remove every phrase of ``signal`` from ``text`` and collapse whitespace."""
    cleaned = text
    for rule in rules_for(signal):
        cleaned = _compile(rule.pattern).sub(" ", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()
