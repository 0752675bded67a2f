from datetime import datetime
from typing import Any, Dict, List

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from onlyif_messaging.models.message import MessageDocument
from onlyif_messaging.repositories.base import translate_store_errors


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    @translate_store_errors
    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("timestamp", ASCENDING), ("_id", ASCENDING)])
        await self.collection.create_index([("conversation_id", ASCENDING), ("sender_id", ASCENDING), ("read", ASCENDING)])

    @translate_store_errors
    async def save_message(
        self,
        conversation_id: str,
        sender_id: str,
        message_text: str,
        timestamp: datetime,
    ) -> MessageDocument:
        doc: Dict[str, Any] = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "message_text": message_text,
            "timestamp": timestamp,
            "read": False,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc  # type: ignore[return-value]

    @translate_store_errors
    async def get_messages_by_conversation(self, conversation_id: str) -> List[MessageDocument]:
        # ObjectIds grow with insertion, so _id breaks timestamp ties in insertion order
        cur = self.collection.find({"conversation_id": conversation_id}).sort([("timestamp", ASCENDING), ("_id", ASCENDING)])
        items = await cur.to_list(length=None)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    @translate_store_errors
    async def mark_read(self, conversation_id: str, reader_id: str) -> int:
        result = await self.collection.update_many(
            {"conversation_id": conversation_id, "sender_id": {"$ne": reader_id}, "read": False},
            {"$set": {"read": True}},
        )
        return result.modified_count or 0

    @translate_store_errors
    async def count_unread(self, conversation_id: str, reader_id: str) -> int:
        return await self.collection.count_documents(
            {"conversation_id": conversation_id, "sender_id": {"$ne": reader_id}, "read": False}
        )
