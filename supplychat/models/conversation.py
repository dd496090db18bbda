from datetime import datetime
from typing import Any, List, Optional, TypedDict


class ConversationDocument(TypedDict, total=False):
    # canonical id: "<participant_low>_<participant_high>"
    _id: str
    participants: List[str]
    participant_low: str
    participant_high: str
    # opaque product reference (batch id, variety, owner...), never interpreted
    product_context: Optional[dict[str, Any]]
    created_at: datetime
    last_activity: datetime
    last_message_preview: Optional[str]
    # per-conversation sequence for message ids
    message_seq: int
