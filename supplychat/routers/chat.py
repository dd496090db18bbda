import json
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from supplychat.middleware.error_handler import error_body
from supplychat.schemas.message import Message, UnreadCount
from supplychat.services.chat_service import ChatService
from supplychat.utils.accounts import normalize_account
from supplychat.utils.dependencies import get_chat_service
from supplychat.utils.errors import ChatError
from supplychat.utils.logger import get_logger
from supplychat.utils.websocket_manager import ConnectionManager


router = APIRouter(prefix="/messages", tags=["chat"])
logger = get_logger(__name__)


def _message_event(message: Message) -> str:
    return json.dumps({"type": "message", "message": message.model_dump(mode="json")})


def _invalid_frame(reason: str, **extra: Any) -> str:
    return json.dumps({"type": "error", "error": "INVALID_FRAME", "message": reason, **extra})


@router.get("/unread", response_model=UnreadCount)
async def get_unread(viewer: str, service: ChatService = Depends(get_chat_service)):
    unread = await service.total_unread(viewer)
    return UnreadCount(viewer=normalize_account(viewer), unread=unread)


@router.websocket("/ws/{conversation_id}")
async def chat_socket(websocket: WebSocket, conversation_id: str):
    """
    Live channel for one participant of one conversation (``?account=...``).

    Server -> client: ``history`` once on connect, then ``message``,
    ``typing``, ``ack``, ``read`` and ``error`` events.
    Client -> server: ``{"type": "send", "body", "client_message_id"?}``,
    ``{"type": "typing"}``, ``{"type": "mark_read"}``.
    """
    service: ChatService = websocket.app.state.chat_service
    manager: ConnectionManager = websocket.app.state.connections

    try:
        account = normalize_account(websocket.query_params.get("account", ""))
        conversation = await service.get_conversation(conversation_id)
    except ChatError as exc:
        logger.warning(f"Rejected websocket for {conversation_id}: {exc.message}")
        await websocket.close(code=4404 if exc.code == "NOT_FOUND" else 4400)
        return
    if account not in conversation.participants:
        await websocket.close(code=4403)
        return

    await manager.connect(conversation_id, account, websocket)

    async def forward(message: Message) -> None:
        await websocket.send_text(_message_event(message))

    subscription = await service.subscribe(conversation_id, forward)
    try:
        history = await service.list_messages(conversation_id, viewer=account)
        await websocket.send_text(json.dumps({
            "type": "history",
            "messages": [m.model_dump(mode="json") for m in history],
        }))
        while True:
            data = await websocket.receive_text()
            try:
                frame = json.loads(data)
            except ValueError:
                await websocket.send_text(_invalid_frame("Frame is not JSON"))
                continue
            if not isinstance(frame, dict):
                await websocket.send_text(_invalid_frame("Frame must be a JSON object"))
                continue
            await _handle_frame(websocket, manager, service, conversation_id, account, frame)
    except WebSocketDisconnect:
        logger.info(f"{account} disconnected from {conversation_id}")
    finally:
        manager.disconnect(conversation_id, account, websocket)
        await service.unsubscribe(subscription)


async def _handle_frame(
    websocket: WebSocket,
    manager: ConnectionManager,
    service: ChatService,
    conversation_id: str,
    account: str,
    frame: Dict[str, Any],
) -> None:
    kind = frame.get("type")
    try:
        if kind == "typing":
            service.signal_typing(conversation_id, account)
            await manager.send_to_others(conversation_id, account, json.dumps({"type": "typing", "from": account}))
        elif kind == "mark_read":
            updated = await service.mark_as_read(conversation_id, account)
            await websocket.send_text(json.dumps({"type": "read", "updated": updated}))
        elif kind == "send":
            body = frame.get("body")
            if body is not None and not isinstance(body, str):
                await websocket.send_text(
                    _invalid_frame("Message body must be a string", client_message_id=frame.get("client_message_id"))
                )
                return
            message = await service.send_message(conversation_id, account, body or "")
            await websocket.send_text(json.dumps({
                "type": "ack",
                "client_message_id": frame.get("client_message_id"),
                "message": message.model_dump(mode="json"),
            }))
        else:
            await websocket.send_text(_invalid_frame(f"Unknown frame type: {kind}"))
    except ChatError as exc:
        payload = {"type": "error", **error_body(exc)}
        if kind == "send":
            payload["client_message_id"] = frame.get("client_message_id")
        await websocket.send_text(json.dumps(payload))
