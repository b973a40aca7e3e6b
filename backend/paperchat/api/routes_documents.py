"""Document registration routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from paperchat.api.dependencies import get_registry
from paperchat.ingest.types import DocumentIndex
from paperchat.models.dto import DocumentCreateRequest, DocumentResponse
from paperchat.retrieval.documents import DocumentRegistry

router = APIRouter()


@router.post("/documents", response_model=DocumentResponse, summary="Register document text for chat")
async def register_document(
    request: DocumentCreateRequest,
    registry: DocumentRegistry = Depends(get_registry),
) -> DocumentResponse:
    index = registry.get_or_create(request.document_id, request.text, request.title)
    return _to_response(index)


@router.get("/documents/{document_id}", response_model=DocumentResponse, summary="Describe a registered document")
async def get_document(document_id: str, registry: DocumentRegistry = Depends(get_registry)) -> DocumentResponse:
    index = registry.get(document_id)
    if index is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return _to_response(index)


@router.delete("/documents/{document_id}", summary="Forget a registered document")
async def delete_document(document_id: str, registry: DocumentRegistry = Depends(get_registry)) -> dict[str, bool]:
    if not registry.discard(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"ok": True}


def _to_response(index: DocumentIndex) -> DocumentResponse:
    return DocumentResponse(
        document_id=index.document_id,
        title=index.title,
        chunks=len(index.chunks),
        full_length=index.full_length,
        avg_chunk_length=index.avg_chunk_length,
        embedding_state=index.embedding_state.value,
    )


__all__ = ["router"]
