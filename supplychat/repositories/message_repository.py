from datetime import datetime
from typing import List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from supplychat.models.message import MessageDocument
from supplychat.utils.errors import storage_errors


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        with storage_errors("ensure message indexes"):
            await self.collection.create_index(
                [("conversation_id", ASCENDING), ("created_at", ASCENDING), ("_id", ASCENDING)]
            )
            await self.collection.create_index(
                [("conversation_id", ASCENDING), ("read", ASCENDING), ("sender", ASCENDING)]
            )

    async def save_message(
        self,
        message_id: str,
        conversation_id: str,
        sender: str,
        body: str,
        created_at: datetime,
        seq: int,
    ) -> MessageDocument:
        doc: MessageDocument = {
            "_id": message_id,
            "conversation_id": conversation_id,
            "sender": sender,
            "body": body,
            "created_at": created_at,
            "seq": seq,
            "delivered": False,
            "read": False,
        }
        with storage_errors("save message"):
            await self.collection.insert_one(doc)
        return doc

    async def get_messages_by_conversation(self, conversation_id: str) -> List[MessageDocument]:
        sort = [("created_at", ASCENDING), ("_id", ASCENDING)]
        with storage_errors("list messages"):
            cursor = self.collection.find({"conversation_id": conversation_id}, sort=sort)
            return await cursor.to_list(length=None)

    async def mark_delivered_for_receiver(self, conversation_id: str, receiver: str) -> int:
        with storage_errors("mark messages delivered"):
            result = await self.collection.update_many(
                {"conversation_id": conversation_id, "sender": {"$ne": receiver}, "delivered": False},
                {"$set": {"delivered": True}},
            )
        return result.modified_count or 0

    async def mark_read(self, conversation_id: str, reader: str) -> int:
        with storage_errors("mark messages read"):
            result = await self.collection.update_many(
                {"conversation_id": conversation_id, "sender": {"$ne": reader}, "read": False},
                {"$set": {"read": True, "delivered": True}},
            )
        return result.modified_count or 0

    async def count_unread(self, conversation_ids: List[str], viewer: str) -> int:
        if not conversation_ids:
            return 0
        with storage_errors("count unread messages"):
            return await self.collection.count_documents(
                {"conversation_id": {"$in": conversation_ids}, "sender": {"$ne": viewer}, "read": False}
            )
