from supplychat.models.conversation import ConversationDocument
from supplychat.repositories.conversation_repository import ConversationRepository
from supplychat.repositories.message_repository import MessageRepository
from supplychat.utils.accounts import normalize_account
from supplychat.utils.errors import NotFound
from supplychat.utils.logger import get_logger


logger = get_logger(__name__)


class ReadTracker:
    """Unread counts derived from the message log, plus the monotonic read flag."""

    def __init__(self, message_repo: MessageRepository, conversation_repo: ConversationRepository) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo

    async def _require(self, conversation_id: str) -> ConversationDocument:
        conversation = await self._conversation_repo.get(conversation_id)
        if conversation is None:
            raise NotFound("conversation", conversation_id)
        return conversation

    async def mark_as_read(self, conversation_id: str, reader: str) -> int:
        """
        Flip ``read`` on every message not sent by ``reader``. Returns how many
        changed; a reader outside the conversation changes nothing.
        """
        conversation = await self._require(conversation_id)
        reader = normalize_account(reader)
        if reader not in (conversation["participant_low"], conversation["participant_high"]):
            logger.debug(f"Ignoring mark as read by non-participant {reader} in {conversation_id}")
            return 0
        modified = await self._message_repo.mark_read(conversation_id, reader)
        if modified:
            logger.info(f"{reader} read {modified} message(s) in {conversation_id}")
        return modified

    async def unread_count(self, conversation_id: str, viewer: str) -> int:
        await self._require(conversation_id)
        return await self._message_repo.count_unread([conversation_id], normalize_account(viewer))

    async def total_unread(self, viewer: str) -> int:
        viewer = normalize_account(viewer)
        conversation_ids = await self._conversation_repo.ids_for_account(viewer)
        return await self._message_repo.count_unread(conversation_ids, viewer)
