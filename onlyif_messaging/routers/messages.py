from typing import Optional

from fastapi import APIRouter, Depends, Query

from onlyif_messaging.schemas.common import ApiResponse
from onlyif_messaging.schemas.messaging import ConversationRead, MessageRead, SendMessageInput
from onlyif_messaging.services.chat_service import ChatService
from onlyif_messaging.utils.dependencies import get_chat_service


router = APIRouter(prefix="/messages", tags=["chat"])


@router.post("", response_model=ApiResponse[MessageRead])
async def send_message(payload: SendMessageInput, service: ChatService = Depends(get_chat_service)):
    message = await service.send_message(payload)
    return ApiResponse(data=MessageRead.from_document(message))


@router.get("/ensure-thread", response_model=ApiResponse[ConversationRead])
async def ensure_thread(
    user_id: Optional[str] = Query(None, alias="userId"),
    other_user_id: Optional[str] = Query(None, alias="otherUserId"),
    property_id: Optional[str] = Query(None, alias="propertyId"),
    property_title: Optional[str] = Query(None, alias="propertyTitle"),
    service: ChatService = Depends(get_chat_service),
):
    convo = await service.ensure_conversation(user_id, other_user_id, property_id, property_title)
    return ApiResponse(data=ConversationRead.from_document(convo, viewer_id=user_id))
