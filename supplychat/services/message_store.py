from datetime import datetime
from typing import List, Optional

from supplychat.models.message import MessageDocument
from supplychat.repositories.conversation_repository import ConversationRepository
from supplychat.repositories.message_repository import MessageRepository
from supplychat.schemas.message import Message
from supplychat.utils.accounts import normalize_account
from supplychat.utils.clock import Clock, ensure_utc, utcnow
from supplychat.utils.errors import BodyTooLong, EmptyMessage, NotAParticipant, NotFound, TransientIO
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)

MAX_BODY_LENGTH = 1000
SEQ_WIDTH = 12


def message_id_for(conversation_id: str, seq: int) -> str:
    # zero padding keeps string order equal to append order within a conversation
    return f"{conversation_id}:{seq:0{SEQ_WIDTH}d}"


def to_message(doc: MessageDocument) -> Message:
    return Message(
        id=doc["_id"],
        conversation_id=doc["conversation_id"],
        sender=doc["sender"],
        body=doc["body"],
        created_at=ensure_utc(doc["created_at"]),
        read=bool(doc.get("read", False)),
        delivered=bool(doc.get("delivered", False)),
    )


def _truncate_to_millis(value: datetime) -> datetime:
    # BSON dates carry millisecond precision
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


class MessageStore:
    """Append-only, per-conversation ordered message log."""

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        clock: Clock = utcnow,
        max_body_length: int = MAX_BODY_LENGTH,
        preview_length: int = 200,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._clock = clock
        self._max_body_length = max_body_length
        self._preview_length = preview_length

    async def append(self, conversation_id: str, sender: str, body: str) -> Message:
        """
        Validate and store a message, then bump the conversation's activity.

        Over-long bodies are rejected, never truncated. Nothing is written
        unless every check passes.
        """
        draft = await self.prepare(conversation_id, sender, body)
        return await self.commit(draft)

    async def prepare(self, conversation_id: str, sender: str, body: str) -> MessageDocument:
        """
        Run every check and reserve the message's sequence number.

        Nothing is inserted yet, so abandoning the returned draft leaves no
        message behind (only a gap in the sequence).
        """
        conversation = await self._conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFound("conversation", conversation_id)
        sender = normalize_account(sender)
        if sender not in (conversation["participant_low"], conversation["participant_high"]):
            raise NotAParticipant(conversation_id, sender)

        content = (body or "").strip()
        if not content:
            raise EmptyMessage()
        if len(content) > self._max_body_length:
            raise BodyTooLong(len(content), self._max_body_length)

        seq = await self._conversation_repo.allocate_seq(conversation_id)
        if seq is None:
            raise NotFound("conversation", conversation_id)
        return {
            "_id": message_id_for(conversation_id, seq),
            "conversation_id": conversation_id,
            "sender": sender,
            "body": content,
            "created_at": _truncate_to_millis(self._clock()),
            "seq": seq,
        }

    async def commit(self, draft: MessageDocument) -> Message:
        """
        Insert a prepared message. Once the insert succeeds the message is
        part of the log; refreshing the conversation's preview and activity
        afterwards is best effort.
        """
        saved = await self._message_repo.save_message(
            message_id=draft["_id"],
            conversation_id=draft["conversation_id"],
            sender=draft["sender"],
            body=draft["body"],
            created_at=draft["created_at"],
            seq=draft["seq"],
        )
        logger.info(f"Message {saved['_id']} appended by {saved['sender']}")
        try:
            await self._conversation_repo.update_on_new_message(
                saved["conversation_id"], saved["body"][: self._preview_length], saved["created_at"]
            )
        except TransientIO as exc:
            logger.warning(f"Activity for {saved['conversation_id']} not updated after {saved['_id']}: {exc.message}")
        return to_message(saved)

    async def list(self, conversation_id: str, viewer: Optional[str] = None) -> List[Message]:
        """
        Full ordered log, ascending by ``(created_at, id)``.

        When ``viewer`` is given, the other party's messages are marked
        delivered before the log is read.
        """
        conversation = await self._conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFound("conversation", conversation_id)
        if viewer is not None:
            viewer = normalize_account(viewer)
            if viewer in (conversation["participant_low"], conversation["participant_high"]):
                await self._message_repo.mark_delivered_for_receiver(conversation_id, viewer)
        docs = await self._message_repo.get_messages_by_conversation(conversation_id)
        messages = [to_message(doc) for doc in docs]
        messages.sort(key=Message.sort_key)
        return messages
