from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query

from onlyif_messaging.schemas.common import ApiResponse
from onlyif_messaging.schemas.messaging import (
    ConversationRead,
    MarkReadRequest,
    MarkReadResult,
    MessageRead,
    UnreadSummary,
)
from onlyif_messaging.services.chat_service import ChatService
from onlyif_messaging.utils.dependencies import get_chat_service


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("", response_model=ApiResponse[List[ConversationRead]])
async def list_conversations(
    user_id: Optional[str] = Query(None, alias="userId"),
    user_role: Optional[str] = Query(None, alias="userRole"),
    service: ChatService = Depends(get_chat_service),
):
    items = await service.list_conversations(user_id, user_role)
    return ApiResponse(data=[ConversationRead.from_document(c, viewer_id=user_id) for c in items])


@router.get("/unread", response_model=ApiResponse[UnreadSummary])
async def unread_summary(
    user_id: Optional[str] = Query(None, alias="userId"),
    service: ChatService = Depends(get_chat_service),
):
    summary = await service.unread_summary(user_id)
    return ApiResponse(data=UnreadSummary(**summary))


@router.get("/{conversation_id}/messages", response_model=ApiResponse[List[MessageRead]])
async def list_messages(conversation_id: str, service: ChatService = Depends(get_chat_service)):
    messages = await service.get_messages(conversation_id)
    return ApiResponse(data=[MessageRead.from_document(m) for m in messages])


@router.put("/{conversation_id}/messages", response_model=ApiResponse[MarkReadResult])
async def mark_read(
    conversation_id: str,
    body: MarkReadRequest = Body(...),
    service: ChatService = Depends(get_chat_service),
):
    updated = await service.mark_read(conversation_id, body.user_id)
    return ApiResponse(data=MarkReadResult(updated=updated))
