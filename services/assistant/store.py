"""Evidence store adapter over the vector search service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from .schemas import EvidenceChunk
from .session import approx_token_len
from .settings import get_settings

settings = get_settings()

ALL_SCOPE = "all"


async def _search(query: str, top_k: int, scope_id: Optional[str]) -> Dict[str, Any]:
    url = f"{settings.vector_url.rstrip('/')}/v1/search"
    payload = {"query": query, "top_k": top_k, "scope_id": scope_id}
    async with httpx.AsyncClient(timeout=settings.request_timeout_s) as client:
        response = await client.post(url, json=payload)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise RuntimeError("Vector search response payload must be a JSON object.")
        return data


def _describe_title(hit: Dict[str, Any]) -> Optional[str]:
    metadata = hit.get("metadata") or {}
    for value in (hit.get("title"), metadata.get("title"), metadata.get("document_title"), metadata.get("filename")):
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _to_chunk(hit: Dict[str, Any], position: int, scope_id: Optional[str]) -> Optional[EvidenceChunk]:
    text = str(hit.get("text") or hit.get("content") or "").strip()
    if not text:
        return None
    document_id = str(hit.get("documentId") or hit.get("document_id") or hit.get("doc_id") or scope_id or "").strip()
    chunk_id = str(hit.get("id") or hit.get("chunk_id") or f"{document_id or 'chunk'}:{position}")
    score = hit.get("relevanceScore", hit.get("score"))
    try:
        relevance = float(score) if score is not None else 0.0
    except (TypeError, ValueError):
        relevance = 0.0
    tokens = hit.get("tokenCount") or hit.get("token_count")
    if not isinstance(tokens, int) or tokens <= 0:
        tokens = approx_token_len(text)
    return EvidenceChunk(
        id=chunk_id,
        documentId=document_id,
        text=text,
        relevanceScore=relevance,
        tokenCount=tokens,
        title=_describe_title(hit),
    )


async def search(query: str, top_k: int, scope_id: Optional[str] = None) -> List[EvidenceChunk]:
    """Return up to ``top_k`` chunks ranked by score, restricted to ``scope_id`` when given."""
    if not query or not query.strip():
        return []
    scope = None if scope_id in (None, "", ALL_SCOPE) else scope_id
    data = await _search(query, top_k, scope)
    chunks: List[EvidenceChunk] = []
    for position, hit in enumerate(data.get("chunks") or data.get("results") or []):
        if not isinstance(hit, dict):
            continue
        chunk = _to_chunk(hit, position, scope)
        if chunk is None:
            continue
        if scope and chunk.documentId != scope:
            continue
        chunks.append(chunk)
    chunks.sort(key=lambda chunk: chunk.relevanceScore, reverse=True)
    return chunks[:top_k]
