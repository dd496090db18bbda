"""
Optimistic sending for one conversation view.

Outgoing messages move through ``composing -> sending -> sent -> delivered ->
read`` and never back. A send shows up locally at once under a temporary id;
the confirmed message from the store replaces it, or the entry is removed and
the draft handed back when the store rejects or fails the append.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from supplychat.schemas.message import Message
from supplychat.utils.accounts import normalize_account
from supplychat.utils.clock import Clock, utcnow
from supplychat.utils.errors import ChatError
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)

AppendCall = Callable[[str], Awaitable[Message]]


class DeliveryState(str, enum.Enum):
    COMPOSING = "composing"
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def advance(self, target: "DeliveryState") -> "DeliveryState":
        """Return the state after moving toward ``target``; regressions are ignored."""
        if target.rank <= self.rank:
            return self
        if target in (DeliveryState.DELIVERED, DeliveryState.READ) and self.rank < DeliveryState.SENT.rank:
            raise ValueError(f"{target.value} is only reachable after sent, not from {self.value}")
        return target


_RANK = {state: index for index, state in enumerate(DeliveryState)}


def state_from_message(message: Message) -> DeliveryState:
    if message.read:
        return DeliveryState.READ
    if message.delivered:
        return DeliveryState.DELIVERED
    return DeliveryState.SENT


class SendFailed(ChatError):
    """The append did not go through; ``draft`` is the text to put back in the input."""

    def __init__(self, draft: str, cause: Exception):
        super().__init__(
            message=f"Message could not be sent: {cause}",
            code="SEND_FAILED",
            details={"cause": getattr(cause, "code", type(cause).__name__)},
        )
        self.draft = draft
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return getattr(self.cause, "code", None) == "TRANSIENT_IO"


@dataclass
class LocalMessage:
    id: str
    sender: str
    body: str
    created_at: datetime
    state: DeliveryState
    temporary: bool = False

    def sort_key(self) -> tuple:
        # pending entries stay after everything the store has confirmed
        return (self.temporary, self.created_at, self.id)


@dataclass
class OptimisticReconciler:
    account: str
    append: AppendCall
    clock: Clock = utcnow
    _entries: Dict[str, LocalMessage] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.account = normalize_account(self.account)

    def messages(self) -> List[LocalMessage]:
        return sorted(self._entries.values(), key=LocalMessage.sort_key)

    def get(self, message_id: str) -> Optional[LocalMessage]:
        return self._entries.get(message_id)

    def pending(self) -> List[LocalMessage]:
        return [entry for entry in self.messages() if entry.temporary]

    async def submit(self, text: str) -> LocalMessage:
        """
        Show ``text`` immediately as ``sending`` and append it.

        Raises:
            SendFailed: the temporary entry has been removed; ``draft`` holds
                the original text so the caller can restore it.
        """
        temp_id = f"local-{uuid.uuid4().hex}"
        entry = LocalMessage(
            id=temp_id,
            sender=self.account,
            body=text,
            created_at=self.clock(),
            state=DeliveryState.COMPOSING.advance(DeliveryState.SENDING),
            temporary=True,
        )
        self._entries[temp_id] = entry
        try:
            confirmed = await self.append(text)
        except Exception as exc:
            self._entries.pop(temp_id, None)
            logger.warning(f"Send from {self.account} rolled back: {exc}")
            raise SendFailed(text, exc) from exc

        self._entries.pop(temp_id, None)
        existing = self._entries.get(confirmed.id)
        if existing is not None:
            # the live update got here before the append returned
            return existing
        entry.id = confirmed.id
        entry.body = confirmed.body
        entry.created_at = confirmed.created_at
        entry.temporary = False
        entry.state = entry.state.advance(DeliveryState.SENT).advance(state_from_message(confirmed))
        self._entries[entry.id] = entry
        return entry

    def merge(self, message: Message) -> bool:
        """
        Fold a confirmed message (live update or resync) into the view.

        Duplicates are expected; returns True only when something changed.
        """
        existing = self._entries.get(message.id)
        if existing is None:
            self._entries[message.id] = LocalMessage(
                id=message.id,
                sender=message.sender,
                body=message.body,
                created_at=message.created_at,
                state=state_from_message(message),
            )
            return True
        advanced = existing.state.advance(state_from_message(message))
        if advanced is existing.state:
            return False
        existing.state = advanced
        return True

    def merge_all(self, messages: List[Message]) -> int:
        return sum(1 for message in messages if self.merge(message))

    def mark_incoming_read(self) -> None:
        for entry in self._entries.values():
            if entry.sender != self.account and not entry.temporary:
                entry.state = entry.state.advance(DeliveryState.READ)

    def unread_incoming(self) -> int:
        return sum(
            1
            for entry in self._entries.values()
            if entry.sender != self.account and entry.state is not DeliveryState.READ
        )
