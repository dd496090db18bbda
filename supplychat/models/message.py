from datetime import datetime
from typing import TypedDict


class MessageDocument(TypedDict, total=False):
    # "<conversation_id>:<seq zero-padded>"
    _id: str
    conversation_id: str
    sender: str
    body: str
    created_at: datetime
    seq: int
    # delivery states, both only ever go False -> True
    delivered: bool
    read: bool
