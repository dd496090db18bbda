from fastapi import APIRouter, Depends

from supplychat.schemas.message import TypingRequest, TypingStatus
from supplychat.services.chat_service import ChatService
from supplychat.utils.accounts import normalize_account
from supplychat.utils.dependencies import get_chat_service


router = APIRouter(prefix="/presence", tags=["chat"])


@router.post("/{conversation_id}/typing", response_model=TypingStatus)
async def signal_typing(conversation_id: str, payload: TypingRequest, service: ChatService = Depends(get_chat_service)):
    service.signal_typing(conversation_id, payload.account)
    return TypingStatus(conversation_id=conversation_id, account=normalize_account(payload.account), typing=True)


@router.get("/{conversation_id}/{account}", response_model=TypingStatus)
async def typing_status(conversation_id: str, account: str, service: ChatService = Depends(get_chat_service)):
    """
    Whether ``account`` typed in this conversation within the last TTL window.
    Signals live in memory only, so a restart forgets them.
    """
    typing = service.is_typing(conversation_id, account)
    return TypingStatus(conversation_id=conversation_id, account=normalize_account(account), typing=typing)
