import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from onlyif_messaging.models.conversation import ConversationDocument, LastMessageDocument
from onlyif_messaging.repositories.base import translate_store_errors


logger = logging.getLogger(__name__)


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    @translate_store_errors
    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participant_ids", ASCENDING), ("property_id", ASCENDING)])
        await self.collection.create_index([("participants.user_id", ASCENDING), ("updated_at", DESCENDING)])
        await self.collection.create_index([("participants.role", ASCENDING)])

    @translate_store_errors
    async def get(self, conversation_id: str) -> Optional[ConversationDocument]:
        oid = self._to_object_id(conversation_id)
        if oid is None:
            return None
        return self._normalize(await self.collection.find_one({"_id": oid}))

    @translate_store_errors
    async def find_by_pair(self, user_a: str, user_b: str, property_id: Optional[str]) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"participant_ids": sorted([user_a, user_b]), "property_id": property_id})
        return self._normalize(doc)

    @translate_store_errors
    async def create(self, doc: ConversationDocument) -> ConversationDocument:
        to_insert: Dict[str, Any] = {k: v for k, v in doc.items() if k != "_id"}
        pair = {"participant_ids": to_insert["participant_ids"], "property_id": to_insert.get("property_id")}
        # upsert keyed on the pair so two processes racing on the first message share one document
        result = await self.collection.update_one(pair, {"$setOnInsert": to_insert}, upsert=True)
        if result.upserted_id is not None:
            logger.info("Inserted conversation %s", result.upserted_id)
            return self._normalize({**to_insert, "_id": result.upserted_id})
        logger.debug("Conversation for %s already stored", pair["participant_ids"])
        return self._normalize(await self.collection.find_one(pair))

    @translate_store_errors
    async def list_for_user(self, user_id: str) -> List[ConversationDocument]:
        cursor = self.collection.find({"participants.user_id": user_id}).sort([("updated_at", DESCENDING), ("_id", DESCENDING)])
        return [self._normalize(it) for it in await cursor.to_list(length=None)]

    @translate_store_errors
    async def list_with_role(self, role: str) -> List[ConversationDocument]:
        cursor = self.collection.find({"participants.role": role}).sort([("updated_at", DESCENDING), ("_id", DESCENDING)])
        return [self._normalize(it) for it in await cursor.to_list(length=None)]

    @translate_store_errors
    async def update_on_new_message(self, conversation_id: str, last_message: LastMessageDocument, receiver_id: str) -> None:
        oid = self._to_object_id(conversation_id)
        ts = last_message["timestamp"]
        await self.collection.update_one(
            {"_id": oid},
            {
                "$max": {"updated_at": ts},
                "$inc": {f"unread_counters.{receiver_id}": 1},
            },
        )
        # only move last_message forward in time
        await self.collection.update_one(
            {"_id": oid, "$or": [{"last_message": None}, {"last_message.timestamp": {"$lte": ts}}]},
            {"$set": {"last_message": dict(last_message)}},
        )

    @translate_store_errors
    async def set_unread(self, conversation_id: str, user_id: str, count: int) -> None:
        await self.collection.update_one(
            {"_id": self._to_object_id(conversation_id)},
            {"$set": {f"unread_counters.{user_id}": count}},
        )

    @translate_store_errors
    async def ping(self) -> bool:
        await self._db.command("ping")
        return True

    def _normalize(self, doc: Optional[Dict[str, Any]]) -> Optional[ConversationDocument]:
        if doc is None:
            return None
        doc["_id"] = str(doc["_id"])
        doc.setdefault("unread_counters", {})
        doc.setdefault("last_message", None)
        return doc  # type: ignore[return-value]

    def _to_object_id(self, oid_hex: str) -> Optional[ObjectId]:
        try:
            return ObjectId(oid_hex)
        except (InvalidId, TypeError):
            return None
