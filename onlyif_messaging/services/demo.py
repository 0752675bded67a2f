"""Demo-mode helpers: sample data and the seller fallback.

Nothing here is wired unless ``Settings.demo_mode`` is on. The production
path builds ``ChatService`` without a fallback and never seeds data.
"""

import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Protocol

from onlyif_messaging.models.conversation import ConversationDocument
from onlyif_messaging.models.message import MessageDocument
from onlyif_messaging.models.participant import ParticipantDocument


logger = logging.getLogger(__name__)


class ConversationFallback(Protocol):

    async def conversations_for(self, user_id: str, role_hint: Optional[str], conversations) -> List[ConversationDocument]: ...


class SellerDemoFallback:
    """Shows a seller with no history the seller-side template conversations.

    The seller slot of every template is relabelled with the requesting user,
    so a fresh demo account still sees a populated inbox. The templates in the
    store are not modified.
    """

    display_name = "Current Seller"

    async def conversations_for(self, user_id: str, role_hint: Optional[str], conversations) -> List[ConversationDocument]:
        if role_hint != "seller":
            return []
        templates = await conversations.list_with_role("seller")
        return [self._relabel(c, user_id) for c in templates]

    def _relabel(self, convo: ConversationDocument, user_id: str) -> ConversationDocument:
        out = copy.deepcopy(convo)
        counters = out.get("unread_counters") or {}
        for p in out["participants"]:
            if p["role"] == "seller":
                counters[user_id] = counters.pop(p["user_id"], 0)
                p["user_id"] = user_id
                p["name"] = self.display_name
        out["unread_counters"] = counters
        out["participant_ids"] = sorted(p["user_id"] for p in out["participants"])
        return out


BUYER = ParticipantDocument(user_id="buyer-1", name="John Doe", role="buyer", email="john@example.com")
AGENT = ParticipantDocument(user_id="agent-1", name="Sarah Johnson", role="agent", email="sarah@example.com")
SELLER = ParticipantDocument(user_id="seller-1", name="Mike Wilson", role="seller", email="mike@example.com")

DEMO_PARTICIPANTS = [BUYER, AGENT, SELLER]


def _demo_threads(now: datetime):
    fixed = datetime(2024, 1, 20, tzinfo=timezone.utc)
    return [
        {
            "id": "conv-1",
            "type": "buyer_agent",
            "property_id": "1",
            "property_title": "Modern Downtown Condo",
            "participants": [BUYER, AGENT],
            "created_at": fixed.replace(hour=10, minute=30),
            "messages": [
                ("msg-1", BUYER, "Hi, I'm interested in the property at 123 Main St. Can we schedule a viewing?",
                 fixed.replace(hour=10, minute=30), True),
                ("msg-2", AGENT, "I'd be happy to show you the property this weekend.",
                 fixed.replace(hour=11, minute=15), False),
            ],
        },
        {
            "id": "conv-2",
            "type": "agent_seller",
            "property_id": "1",
            "property_title": "Modern Downtown Condo",
            "participants": [AGENT, SELLER],
            "created_at": fixed.replace(hour=9),
            "messages": [
                ("msg-3", AGENT, "I have a potential buyer interested in your property.",
                 fixed.replace(hour=11, minute=30), True),
                ("msg-4", SELLER, "The property is available for viewing this weekend.",
                 fixed.replace(hour=12), True),
            ],
        },
        {
            "id": "conv-3",
            "type": "agent_seller",
            "property_id": "2",
            "property_title": "Family Home Property",
            "participants": [AGENT, SELLER],
            "created_at": fixed.replace(day=18, hour=9),
            "messages": [
                ("msg-5", AGENT, "Good news! We have received an offer on your Family Home Property. "
                 "The buyer is offering the full asking price.", now - timedelta(days=3), True),
                ("msg-6", AGENT, "Your property status has been updated to Contract Exchanged. The buyer has "
                 "signed the contract and we are proceeding to settlement.", now - timedelta(days=2), True),
            ],
        },
    ]


async def seed_demo_data(conversations, messages, participants, now: Optional[datetime] = None) -> int:
    """Load the sample buyer/agent/seller threads into in-memory stores.

    Returns the number of conversations created.
    """
    now = now or datetime.now(timezone.utc)
    for p in DEMO_PARTICIPANTS:
        participants.add(p)

    threads = _demo_threads(now)
    for thread in threads:
        ids = [p["user_id"] for p in thread["participants"]]
        docs: List[MessageDocument] = [
            MessageDocument(
                _id=msg_id,
                conversation_id=thread["id"],
                sender_id=sender["user_id"],
                message_text=text,
                timestamp=ts,
                read=read,
            )
            for msg_id, sender, text, ts, read in thread["messages"]
        ]
        last = max(docs, key=lambda m: m["timestamp"])
        unread = {
            uid: sum(1 for m in docs if m["sender_id"] != uid and not m["read"])
            for uid in ids
        }
        await conversations.create(ConversationDocument(
            _id=thread["id"],
            type=thread["type"],
            property_id=thread["property_id"],
            property_title=thread["property_title"],
            participants=copy.deepcopy(thread["participants"]),
            participant_ids=sorted(ids),
            last_message={
                "id": last["_id"],
                "sender_id": last["sender_id"],
                "message_text": last["message_text"],
                "timestamp": last["timestamp"],
            },
            unread_counters=unread,
            created_at=thread["created_at"],
            updated_at=last["timestamp"],
        ))
        messages.load(docs)
    logger.info("Seeded %d demo conversations", len(threads))
    return len(threads)
