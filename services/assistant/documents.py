"""Client for the document store collaborator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict

import httpx

from .errors import DocumentStoreError
from .settings import get_settings

logger = logging.getLogger("uvicorn.error")
settings = get_settings()


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    title: str
    plainText: str
    htmlContent: str


def _url(document_id: str) -> str:
    return f"{settings.document_store_url.rstrip('/')}/v1/documents/{document_id}"


def _headers(user_id: str | None) -> Dict[str, str]:
    return {"X-User-Id": user_id} if user_id else {}


async def get_document(document_id: str, user_id: str | None) -> DocumentSnapshot:
    try:
        async with httpx.AsyncClient(timeout=settings.request_timeout_s) as client:
            response = await client.get(_url(document_id), headers=_headers(user_id))
            response.raise_for_status()
            data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Document fetch failed for %s: %s", document_id, exc)
        raise DocumentStoreError(f"Could not load document {document_id}") from exc
    if not isinstance(data, dict):
        raise DocumentStoreError("Document store returned malformed payload")
    return DocumentSnapshot(
        id=document_id,
        title=str(data.get("title") or "Untitled document"),
        plainText=str(data.get("plainText") or ""),
        htmlContent=str(data.get("htmlContent") or ""),
    )


async def update_document(document_id: str, user_id: str | None, patch: Dict[str, Any]) -> None:
    try:
        async with httpx.AsyncClient(timeout=settings.request_timeout_s) as client:
            response = await client.patch(_url(document_id), headers=_headers(user_id), json=patch)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Document update failed for %s: %s", document_id, exc)
        raise DocumentStoreError(f"Could not update document {document_id}") from exc
