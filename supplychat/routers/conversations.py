from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from supplychat.schemas.conversation import Conversation, ConversationCreate
from supplychat.schemas.message import MarkReadRequest, Message, MessageCreate, UnreadCount
from supplychat.services.chat_service import ChatService
from supplychat.utils.accounts import normalize_account
from supplychat.utils.dependencies import get_chat_service


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.post("", response_model=Conversation)
async def get_or_create_conversation(payload: ConversationCreate, service: ChatService = Depends(get_chat_service)):
    return await service.get_or_create_conversation(payload.account_a, payload.account_b, payload.product_context)


@router.get("")
async def list_conversations(account: str, limit: int = Query(0, ge=0, le=100), service: ChatService = Depends(get_chat_service)):
    items = await service.list_conversations(account, limit=limit)
    return {"items": [item.model_dump(mode="json") for item in items]}


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(conversation_id: str, service: ChatService = Depends(get_chat_service)):
    return await service.get_conversation(conversation_id)


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, viewer: Optional[str] = None, service: ChatService = Depends(get_chat_service)):
    messages = await service.list_messages(conversation_id, viewer=viewer)
    return {"items": [m.model_dump(mode="json") for m in messages]}


@router.post("/{conversation_id}/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(conversation_id: str, payload: MessageCreate, service: ChatService = Depends(get_chat_service)):
    return await service.send_message(conversation_id, payload.sender, payload.body)


@router.post("/{conversation_id}/read")
async def mark_read(conversation_id: str, payload: MarkReadRequest, service: ChatService = Depends(get_chat_service)):
    count = await service.mark_as_read(conversation_id, payload.reader)
    return {"updated": count}


@router.get("/{conversation_id}/unread", response_model=UnreadCount)
async def unread_count(conversation_id: str, viewer: str, service: ChatService = Depends(get_chat_service)):
    unread = await service.unread_count(conversation_id, viewer)
    return UnreadCount(viewer=normalize_account(viewer), unread=unread, conversation_id=conversation_id)
