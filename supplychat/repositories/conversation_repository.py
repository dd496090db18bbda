from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from supplychat.models.conversation import ConversationDocument
from supplychat.utils.errors import storage_errors


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        with storage_errors("ensure conversation indexes"):
            await self.collection.create_index([("participants", ASCENDING)])
            await self.collection.create_index([("last_activity", DESCENDING)])

    async def upsert(
        self,
        conversation_id: str,
        participant_low: str,
        participant_high: str,
        product_context: Optional[Dict[str, Any]],
        now: datetime,
    ) -> ConversationDocument:
        """Create the conversation or touch it; a non-null context replaces the stored one."""
        on_insert: Dict[str, Any] = {
            "participants": [participant_low, participant_high],
            "participant_low": participant_low,
            "participant_high": participant_high,
            "created_at": now,
            "last_message_preview": None,
            "message_seq": 0,
        }
        to_set: Dict[str, Any] = {"last_activity": now}
        if product_context is not None:
            to_set["product_context"] = product_context
        else:
            on_insert["product_context"] = None

        update = {"$set": to_set, "$setOnInsert": on_insert}
        with storage_errors("upsert conversation"):
            try:
                return await self.collection.find_one_and_update(
                    {"_id": conversation_id},
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                # lost an insert race on the same pair; the record exists now
                return await self.collection.find_one_and_update(
                    {"_id": conversation_id},
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )

    async def get(self, conversation_id: str) -> Optional[ConversationDocument]:
        with storage_errors("load conversation"):
            return await self.collection.find_one({"_id": conversation_id})

    async def allocate_seq(self, conversation_id: str) -> Optional[int]:
        with storage_errors("allocate message sequence"):
            doc = await self.collection.find_one_and_update(
                {"_id": conversation_id},
                {"$inc": {"message_seq": 1}},
                projection={"message_seq": True},
                return_document=ReturnDocument.AFTER,
            )
        if doc is None:
            return None
        return int(doc["message_seq"])

    async def update_on_new_message(self, conversation_id: str, preview: str, at: datetime) -> None:
        with storage_errors("update conversation activity"):
            await self.collection.update_one(
                {"_id": conversation_id},
                {"$set": {"last_activity": at, "last_message_preview": preview}},
            )

    async def list_for_account(self, account: str, limit: int = 0) -> List[ConversationDocument]:
        query = {"participants": account}
        sort = [("last_activity", DESCENDING), ("_id", DESCENDING)]
        with storage_errors("list conversations"):
            cursor = self.collection.find(query, sort=sort, limit=limit)
            return await cursor.to_list(length=limit or None)

    async def ids_for_account(self, account: str) -> List[str]:
        with storage_errors("list conversation ids"):
            cursor = self.collection.find({"participants": account}, projection={"_id": True})
            items = await cursor.to_list(length=None)
        return [it["_id"] for it in items]
