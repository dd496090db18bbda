from datetime import datetime

from pydantic import BaseModel


class Message(BaseModel):

    id: str
    conversation_id: str
    sender: str
    body: str
    created_at: datetime
    read: bool = False
    delivered: bool = False

    def sort_key(self) -> tuple[datetime, str]:
        return (self.created_at, self.id)


class MessageCreate(BaseModel):

    sender: str
    body: str


class MarkReadRequest(BaseModel):

    reader: str


class UnreadCount(BaseModel):

    viewer: str
    unread: int
    conversation_id: str | None = None


class TypingRequest(BaseModel):

    account: str


class TypingStatus(BaseModel):

    conversation_id: str
    account: str
    typing: bool
