"""Search routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowledge_assistant.api.dependencies import get_service
from knowledge_assistant.models.dto import SearchRequest, SearchResultResponse
from knowledge_assistant.service import AssistantService

router = APIRouter()


@router.post("/search", response_model=list[SearchResultResponse], summary="Semantic search over the corpus")
async def search(
    request: SearchRequest,
    service: AssistantService = Depends(get_service),
) -> list[SearchResultResponse]:
    results = await service.search_documents(request.query, top_k=request.top_k)
    return [SearchResultResponse.from_entity(result) for result in results]
