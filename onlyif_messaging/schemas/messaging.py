"""Wire shapes for conversations and messages.

Fields are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from onlyif_messaging.models.conversation import ConversationDocument, ConversationType
from onlyif_messaging.models.message import MessageDocument
from onlyif_messaging.models.participant import Role


class CamelModel(BaseModel):

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendMessageInput(CamelModel):
    """Body of ``POST /messages``."""

    sender_id: str
    message_text: str
    sender_role: Optional[Role] = None
    conversation_id: Optional[str] = None
    recipient_id: Optional[str] = None
    recipient_role: Optional[Role] = None
    property_id: Optional[str] = None
    property_title: Optional[str] = None


class MarkReadRequest(CamelModel):

    user_id: str = Field(min_length=1)


class ParticipantRead(CamelModel):

    user_id: str
    name: str
    role: Role
    email: str


class LastMessageRead(CamelModel):

    id: str
    sender_id: str
    message_text: str
    timestamp: datetime


class MessageRead(CamelModel):

    id: str
    conversation_id: str
    sender_id: str
    message_text: str
    timestamp: datetime
    read: bool

    @classmethod
    def from_document(cls, doc: MessageDocument) -> "MessageRead":
        return cls(
            id=doc["_id"],
            conversation_id=doc["conversation_id"],
            sender_id=doc["sender_id"],
            message_text=doc["message_text"],
            timestamp=doc["timestamp"],
            read=doc["read"],
        )


class ConversationRead(CamelModel):

    id: str
    type: ConversationType
    property_id: Optional[str] = None
    property_title: Optional[str] = None
    participants: List[ParticipantRead]
    last_message: Optional[LastMessageRead] = None
    unread_count: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: ConversationDocument, viewer_id: Optional[str] = None) -> "ConversationRead":
        """Render a stored conversation; ``unread_count`` is what ``viewer_id`` has not read."""
        counters = doc.get("unread_counters") or {}
        last = doc.get("last_message")
        return cls(
            id=doc["_id"],
            type=doc["type"],
            property_id=doc.get("property_id"),
            property_title=doc.get("property_title"),
            participants=[ParticipantRead(**p) for p in doc["participants"]],
            last_message=LastMessageRead(**last) if last else None,
            unread_count=counters.get(viewer_id, 0) if viewer_id else 0,
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )


class MarkReadResult(CamelModel):

    message: str = "Messages marked as read"
    updated: int = 0


class UnreadSummary(CamelModel):

    total: int
    conversations: Dict[str, int]


class HealthStatus(BaseModel):

    status: Literal["ok", "degraded"]
    storage: str
