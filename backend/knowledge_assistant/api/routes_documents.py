"""Document library routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowledge_assistant.api.dependencies import get_service
from knowledge_assistant.models.dto import (
    ChunkResponse,
    DeleteResponse,
    DocumentContentResponse,
    DocumentResponse,
    DocumentUploadRequest,
)
from knowledge_assistant.service import AssistantService

router = APIRouter()


@router.get("", response_model=list[DocumentResponse], summary="List documents")
async def list_documents(service: AssistantService = Depends(get_service)) -> list[DocumentResponse]:
    documents = await service.list_documents()
    return [DocumentResponse.from_entity(document) for document in documents]


@router.post("", response_model=DocumentResponse, status_code=201, summary="Upload a local file")
async def upload_document(
    request: DocumentUploadRequest,
    service: AssistantService = Depends(get_service),
) -> DocumentResponse:
    document = await service.upload_document(request.path, wait=request.wait)
    return DocumentResponse.from_entity(document)


@router.get("/{document_id}", response_model=DocumentResponse, summary="Get a document")
async def get_document(document_id: str, service: AssistantService = Depends(get_service)) -> DocumentResponse:
    return DocumentResponse.from_entity(await service.get_document(document_id))


@router.get("/{document_id}/content", response_model=DocumentContentResponse, summary="Extracted text")
async def get_document_content(
    document_id: str,
    service: AssistantService = Depends(get_service),
) -> DocumentContentResponse:
    content = await service.get_document_content(document_id)
    return DocumentContentResponse(document_id=document_id, content=content)


@router.get("/{document_id}/chunks", response_model=list[ChunkResponse], summary="Stored chunks")
async def get_document_chunks(
    document_id: str,
    service: AssistantService = Depends(get_service),
) -> list[ChunkResponse]:
    chunks = await service.get_document_chunks(document_id)
    return [ChunkResponse.from_entity(chunk) for chunk in chunks]


@router.delete("/{document_id}", response_model=DeleteResponse, summary="Delete a document")
async def delete_document(document_id: str, service: AssistantService = Depends(get_service)) -> DeleteResponse:
    return DeleteResponse(**await service.delete_document(document_id))
