"""Chat routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from knowledge_assistant.api.dependencies import get_service
from knowledge_assistant.models.dto import (
    ChatCreateRequest,
    ChatDetailResponse,
    ChatRenameRequest,
    ChatResponse,
    DeleteResponse,
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from knowledge_assistant.service import AssistantService

router = APIRouter()


@router.get("", response_model=list[ChatResponse], summary="List chats, most recent first")
async def list_chats(service: AssistantService = Depends(get_service)) -> list[ChatResponse]:
    return [ChatResponse.from_entity(chat) for chat in await service.list_chats()]


@router.post("", response_model=ChatResponse, status_code=201, summary="Create a chat")
async def create_chat(
    request: ChatCreateRequest | None = None,
    service: AssistantService = Depends(get_service),
) -> ChatResponse:
    chat = await service.create_chat(title=request.title if request else None)
    return ChatResponse.from_entity(chat)


@router.get("/{chat_id}", response_model=ChatDetailResponse, summary="Get a chat with its messages")
async def get_chat(chat_id: str, service: AssistantService = Depends(get_service)) -> ChatDetailResponse:
    detail = await service.get_chat(chat_id)
    chat = detail.chat
    return ChatDetailResponse(
        id=chat.id,
        title=chat.title,
        created_at=chat.created_at,
        updated_at=chat.updated_at,
        messages=[MessageResponse.from_entity(message) for message in detail.messages],
    )


@router.patch("/{chat_id}", response_model=ChatResponse, summary="Rename a chat")
async def rename_chat(
    chat_id: str,
    request: ChatRenameRequest,
    service: AssistantService = Depends(get_service),
) -> ChatResponse:
    return ChatResponse.from_entity(await service.rename_chat(chat_id, request.title))


@router.delete("/{chat_id}", response_model=DeleteResponse, summary="Delete a chat")
async def delete_chat(chat_id: str, service: AssistantService = Depends(get_service)) -> DeleteResponse:
    return DeleteResponse(**await service.delete_chat(chat_id))


@router.post("/{chat_id}/messages", response_model=SendMessageResponse, summary="Ask a question in a chat")
async def send_message(
    chat_id: str,
    request: SendMessageRequest,
    service: AssistantService = Depends(get_service),
) -> SendMessageResponse:
    user_message, assistant_message = await service.send_message(chat_id, request.content)
    return SendMessageResponse(
        user_message=MessageResponse.from_entity(user_message),
        assistant_message=MessageResponse.from_entity(assistant_message),
    )
