from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


ProductContext = Dict[str, Any]


class Conversation(BaseModel):

    id: str
    participant_low: str
    participant_high: str
    product_context: Optional[ProductContext] = None
    last_activity: datetime

    @property
    def participants(self) -> tuple[str, str]:
        return (self.participant_low, self.participant_high)

    def other_participant(self, account: str) -> str:
        return self.participant_high if account == self.participant_low else self.participant_low


class ConversationCreate(BaseModel):

    account_a: str
    account_b: str
    product_context: Optional[ProductContext] = None


class DisplayName(BaseModel):

    name: str
    role: Optional[str] = None


class ConversationSummary(BaseModel):
    """A conversation as listed for one account."""

    conversation: Conversation
    other_party: str
    display_name: str
    role: Optional[str] = None
    last_message_preview: Optional[str] = None
    unread_count: int = Field(default=0, ge=0)
