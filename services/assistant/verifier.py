"""Advisory verification of a drafted response against its evidence bundle."""

from __future__ import annotations

import re
from typing import Iterable, List, Set
from urllib.parse import urlparse

from .schemas import EvidenceBundle, InstructionJSON, VerificationResult

GENERAL_KNOWLEDGE_WARNING = (
    "No document or web sources were used; this answer relies on general knowledge and may be out of date."
)
DIVERSITY_TASKS = frozenset({"fact_check", "summarize"})
MIN_SHARED_TERMS = 2

_MARKER_RE = re.compile(r"\[(\d+)\]")
_TERM_RE = re.compile(r"[a-z0-9][a-z0-9'-]+")
_CLAIM_PATTERNS = (
    ("as_of", re.compile(r"\bas of\s+(?:[A-Z][a-z]+\s+)?(?P<token>(?:19|20)\d{2})\b", re.IGNORECASE)),
    ("percentage", re.compile(r"(?P<token>\d+(?:\.\d+)?)\s?(?:%|percent\b)", re.IGNORECASE)),
    ("currency", re.compile(r"[$€£]\s?(?P<token>\d[\d,]*(?:\.\d+)?)")),
    ("year", re.compile(r"\b(?P<token>(?:19|20)\d{2})\b")),
)
_TIME_SENSITIVE_RE = re.compile(r"\b(?:currently|as of (?:now|today)|latest|right now|at present)\b", re.IGNORECASE)
_STOPWORDS = frozenset(
    {
        "this", "that", "with", "from", "have", "were", "will", "which", "their", "there", "about",
        "would", "could", "should", "these", "those", "been", "into", "than", "then", "they", "them",
        "what", "when", "where", "your", "also", "such", "more", "most", "some", "other",
    }
)


def _terms(text: str) -> Set[str]:
    return {term for term in _TERM_RE.findall(text.lower()) if len(term) > 3 and term not in _STOPWORDS}


def _normalize_number(token: str) -> str:
    return token.replace(",", "")


def _evidence_corpus(instruction: InstructionJSON, bundle: EvidenceBundle) -> str:
    texts: List[str] = [source.text for source in bundle.numbered_sources()]
    texts.append(instruction.inputs.target_text or "")
    return _normalize_number("\n".join(texts))


def _unsupported_claims(draft: str, corpus: str) -> List[str]:
    seen: Set[str] = set()
    unsupported: List[str] = []
    for _kind, pattern in _CLAIM_PATTERNS:
        for match in pattern.finditer(draft):
            claim = match.group(0).strip()
            token = _normalize_number(match.group("token"))
            if token in seen:
                continue
            seen.add(token)
            if not re.search(rf"(?<![\d.]){re.escape(token)}(?![\d])", corpus):
                unsupported.append(claim)
    return unsupported


def _domains(urls: Iterable[str]) -> Set[str]:
    hosts = set()
    for url in urls:
        host = urlparse(url).netloc.lower()
        if host.startswith("www."):
            host = host[4:]
        if host:
            hosts.add(host)
    return hosts


def verify(draft: str, instruction: InstructionJSON, bundle: EvidenceBundle) -> VerificationResult:
    """Check ``draft`` against ``bundle``; never mutates either and never blocks the response."""
    warnings: List[str] = []
    is_valid = True
    sources = bundle.numbered_sources()
    by_id = {source.id: source for source in sources}

    if bundle.is_empty:
        warnings.append(GENERAL_KNOWLEDGE_WARNING)

    invalid_markers = sorted(
        {int(number) for number in _MARKER_RE.findall(draft) if not 1 <= int(number) <= len(sources)}
    )
    if invalid_markers:
        is_valid = False
        rendered = ", ".join(f"[{number}]" for number in invalid_markers)
        warnings.append(f"Citation markers {rendered} do not match any provided source.")

    draft_terms = _terms(draft)
    for ref in instruction.context_refs:
        source = by_id.get(ref.id)
        if source is None:
            continue
        shared = draft_terms & _terms(source.text)
        if len(shared) < MIN_SHARED_TERMS:
            warnings.append(f"Referenced source \"{source.label}\" is not reflected in the response.")

    for claim in _unsupported_claims(draft, _evidence_corpus(instruction, bundle)):
        is_valid = False
        warnings.append(f"Specific claim \"{claim}\" is not supported by the provided sources.")

    if _TIME_SENSITIVE_RE.search(draft) and not bundle.webResults:
        warnings.append("The response makes time-sensitive statements without any current web sources.")

    if instruction.task in DIVERSITY_TASKS and len(bundle.webResults) > 1:
        if len(_domains(result.url for result in bundle.webResults)) < 2:
            warnings.append("All web sources come from a single domain; consider corroborating elsewhere.")

    max_words = instruction.constraints.maxWords
    if max_words and len(draft.split()) > max_words * 1.5:
        warnings.append(f"The response is much longer than the requested {max_words} words.")

    return VerificationResult(isValid=is_valid, warnings=warnings)


def guidance(instruction: InstructionJSON, bundle: EvidenceBundle) -> List[str]:
    """Rules handed to the generator so the draft is checkable afterwards."""
    notes: List[str] = []
    if bundle.is_empty:
        notes.append(
            "No sources are available. Answer from general knowledge, say so briefly, "
            "and do not invent citations, dates or statistics."
        )
    else:
        notes.append("Cite sources only with [n] markers that refer to the numbered sources above.")
        notes.append("Do not state figures, dates or statistics that do not appear in the sources.")
    if instruction.constraints.maxWords:
        notes.append(f"Keep the response under {instruction.constraints.maxWords} words.")
    if instruction.constraints.tone:
        notes.append(f"Use a {instruction.constraints.tone} tone.")
    return notes
