from datetime import datetime
from typing import Dict, List, Literal, Optional, TypedDict

from onlyif_messaging.models.participant import ParticipantDocument


ConversationType = Literal["buyer_agent", "agent_seller", "agent_agent"]


class LastMessageDocument(TypedDict):
    id: str
    sender_id: str
    message_text: str
    timestamp: datetime


class ConversationDocument(TypedDict, total=False):
    _id: str
    type: ConversationType
    property_id: Optional[str]
    property_title: Optional[str]
    # initiator first
    participants: List[ParticipantDocument]
    # sorted copy of the participant user ids, used for pair lookups
    participant_ids: List[str]
    last_message: Optional[LastMessageDocument]
    # per-user unread counters (user_id -> count)
    unread_counters: Dict[str, int]
    created_at: datetime
    updated_at: datetime
