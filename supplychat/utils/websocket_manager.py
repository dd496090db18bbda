from typing import Dict, List, Tuple

from fastapi import WebSocket


class ConnectionManager:
    """Open websockets per conversation, tagged with the account behind each."""

    def __init__(self) -> None:
        self.active_connections: Dict[str, List[Tuple[str, WebSocket]]] = {}

    async def connect(self, conversation_id: str, account: str, websocket: WebSocket) -> None:
        await websocket.accept()
        if conversation_id not in self.active_connections:
            self.active_connections[conversation_id] = []
        self.active_connections[conversation_id].append((account, websocket))

    def disconnect(self, conversation_id: str, account: str, websocket: WebSocket) -> None:
        if conversation_id in self.active_connections:
            try:
                self.active_connections[conversation_id].remove((account, websocket))
            except ValueError:
                pass
            if not self.active_connections[conversation_id]:
                del self.active_connections[conversation_id]

    async def send_to_others(self, conversation_id: str, sender: str, message: str) -> None:
        for account, conn in list(self.active_connections.get(conversation_id, [])):
            if account != sender:
                await conn.send_text(message)
