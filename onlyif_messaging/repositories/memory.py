"""Process-local stores used for development, demo mode and tests.

Every read hands back a deep copy so callers can never mutate stored state
behind the service's back.
"""

import copy
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from bson import ObjectId

from onlyif_messaging.models.conversation import ConversationDocument, LastMessageDocument
from onlyif_messaging.models.message import MessageDocument
from onlyif_messaging.models.participant import ParticipantDocument


def _new_id() -> str:
    return str(ObjectId())


class InMemoryConversationRepository:

    def __init__(self) -> None:
        self._items: Dict[str, ConversationDocument] = {}

    async def get(self, conversation_id: str) -> Optional[ConversationDocument]:
        doc = self._items.get(conversation_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find_by_pair(self, user_a: str, user_b: str, property_id: Optional[str]) -> Optional[ConversationDocument]:
        ids = sorted([user_a, user_b])
        for doc in self._items.values():
            if doc["participant_ids"] == ids and doc.get("property_id") == property_id:
                return copy.deepcopy(doc)
        return None

    async def create(self, doc: ConversationDocument) -> ConversationDocument:
        stored: ConversationDocument = copy.deepcopy(doc)
        stored.setdefault("_id", _new_id())
        stored.setdefault("last_message", None)
        stored.setdefault("unread_counters", {})
        self._items[stored["_id"]] = stored
        return copy.deepcopy(stored)

    async def list_for_user(self, user_id: str) -> List[ConversationDocument]:
        return self._sorted(d for d in self._items.values() if any(p["user_id"] == user_id for p in d["participants"]))

    async def list_with_role(self, role: str) -> List[ConversationDocument]:
        return self._sorted(d for d in self._items.values() if any(p["role"] == role for p in d["participants"]))

    async def update_on_new_message(self, conversation_id: str, last_message: LastMessageDocument, receiver_id: str) -> None:
        doc = self._items[conversation_id]
        ts = last_message["timestamp"]
        if doc["updated_at"] < ts:
            doc["updated_at"] = ts
        current = doc.get("last_message")
        if current is None or current["timestamp"] <= ts:
            doc["last_message"] = copy.deepcopy(last_message)
        counters = doc.setdefault("unread_counters", {})
        counters[receiver_id] = counters.get(receiver_id, 0) + 1

    async def set_unread(self, conversation_id: str, user_id: str, count: int) -> None:
        self._items[conversation_id].setdefault("unread_counters", {})[user_id] = count

    async def ping(self) -> bool:
        return True

    def _sorted(self, docs: Iterable[ConversationDocument]) -> List[ConversationDocument]:
        ordered = sorted(docs, key=lambda d: (d["updated_at"], d["_id"]), reverse=True)
        return [copy.deepcopy(d) for d in ordered]


class InMemoryMessageRepository:

    def __init__(self) -> None:
        # append-only, insertion order per conversation
        self._by_conversation: Dict[str, List[MessageDocument]] = defaultdict(list)

    async def save_message(
        self,
        conversation_id: str,
        sender_id: str,
        message_text: str,
        timestamp: datetime,
    ) -> MessageDocument:
        doc = MessageDocument(
            _id=_new_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            message_text=message_text,
            timestamp=timestamp,
            read=False,
        )
        self._by_conversation[conversation_id].append(doc)
        return copy.deepcopy(doc)

    async def get_messages_by_conversation(self, conversation_id: str) -> List[MessageDocument]:
        # sorted() is stable, equal timestamps keep insertion order
        items = sorted(self._by_conversation.get(conversation_id, []), key=lambda m: m["timestamp"])
        return copy.deepcopy(items)

    async def mark_read(self, conversation_id: str, reader_id: str) -> int:
        modified = 0
        for msg in self._by_conversation.get(conversation_id, []):
            if msg["sender_id"] != reader_id and not msg["read"]:
                msg["read"] = True
                modified += 1
        return modified

    async def count_unread(self, conversation_id: str, reader_id: str) -> int:
        return sum(
            1 for msg in self._by_conversation.get(conversation_id, [])
            if msg["sender_id"] != reader_id and not msg["read"]
        )

    def load(self, messages: Iterable[MessageDocument]) -> None:
        """Bulk-insert fixture messages, preserving their ids and read flags."""
        for msg in messages:
            self._by_conversation[msg["conversation_id"]].append(copy.deepcopy(msg))


class InMemoryParticipantRegistry:

    def __init__(self, participants: Optional[Iterable[ParticipantDocument]] = None) -> None:
        self._items: Dict[str, ParticipantDocument] = {}
        for p in participants or []:
            self.add(p)

    def add(self, participant: ParticipantDocument) -> None:
        self._items[participant["user_id"]] = copy.deepcopy(participant)

    async def get_participant(self, user_id: str) -> Optional[ParticipantDocument]:
        p = self._items.get(user_id)
        return copy.deepcopy(p) if p is not None else None
