from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase

from onlyif_messaging.models.participant import ROLES, ParticipantDocument
from onlyif_messaging.repositories.base import translate_store_errors


class ParticipantRepository:
    """Reads participant identity from the shared ``users`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    @translate_store_errors
    async def get_participant(self, user_id: str) -> Optional[ParticipantDocument]:
        try:
            query = {"_id": ObjectId(user_id)}
        except (InvalidId, TypeError):
            return None
        user = await self._collection.find_one(query)
        if not user or user.get("role") not in ROLES:
            return None
        return ParticipantDocument(
            user_id=str(user["_id"]),
            name=user.get("full_name") or user.get("email") or str(user["_id"]),
            role=user["role"],
            email=user.get("email", ""),
        )
