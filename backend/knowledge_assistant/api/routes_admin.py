"""Index, model, settings and metrics routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response

from knowledge_assistant.api.dependencies import get_service
from knowledge_assistant.core.metrics import metrics_response
from knowledge_assistant.models.dto import RebuildRequest, SettingsUpdateRequest
from knowledge_assistant.service import AssistantService

router = APIRouter()


@router.post("/index/rebuild", status_code=202, summary="Re-chunk and re-embed every document")
async def rebuild_index(
    request: RebuildRequest | None = None,
    service: AssistantService = Depends(get_service),
) -> dict[str, Any]:
    return await service.rebuild_index(wait=request.wait if request else False)


@router.get("/index/status", summary="Index lifecycle state and counts")
async def index_status(service: AssistantService = Depends(get_service)) -> dict[str, Any]:
    return await service.index_status()


@router.post("/model/init", summary="Load the embedding model")
async def init_model(service: AssistantService = Depends(get_service)) -> dict[str, Any]:
    return await service.init_embedding_model()


@router.get("/model/status", summary="Embedding model state")
async def model_status(service: AssistantService = Depends(get_service)) -> dict[str, Any]:
    status = await service.model_status()
    return {**status, "loaded": await service.is_model_loaded()}


@router.get("/settings", summary="Current settings")
async def get_settings(service: AssistantService = Depends(get_service)) -> dict[str, Any]:
    settings = await service.get_settings()
    return settings.model_dump(mode="json")


@router.patch("/settings", summary="Update runtime settings")
async def update_settings(
    request: SettingsUpdateRequest,
    service: AssistantService = Depends(get_service),
) -> dict[str, Any]:
    settings = await service.update_settings(**request.changes())
    return settings.model_dump(mode="json")


@router.get("/metrics", summary="Prometheus metrics")
async def metrics() -> Response:
    return metrics_response()
