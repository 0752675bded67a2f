import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from onlyif_messaging.models.conversation import ConversationDocument, LastMessageDocument
from onlyif_messaging.models.message import MessageDocument
from onlyif_messaging.models.participant import ParticipantDocument
from onlyif_messaging.repositories.base import ConversationStore, MessageStore, ParticipantRegistry
from onlyif_messaging.schemas.messaging import SendMessageInput
from onlyif_messaging.services import policy
from onlyif_messaging.services.demo import ConversationFallback
from onlyif_messaging.utils.errors import (
    ConversationNotFound,
    ForbiddenParticipantPair,
    UnknownParticipant,
    ValidationFailed,
)
from onlyif_messaging.utils.locks import KeyedLock


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatService:
    """Conversation routing, role-pair enforcement and read tracking.

    Writes that touch one conversation (append, last-message/unread update,
    mark-read) run under that conversation's lock. Lazy creation runs under a
    lock keyed by the participant pair and property, so two first messages
    racing each other end up in the same conversation.
    """

    def __init__(
        self,
        message_repo: MessageStore,
        conversation_repo: ConversationStore,
        participants: ParticipantRegistry,
        fallback: Optional[ConversationFallback] = None,
        trust_declared_roles: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._participants = participants
        self._fallback = fallback
        self._trust_declared_roles = trust_declared_roles
        self._clock = clock
        self._locks = KeyedLock()

    async def list_conversations(self, user_id: Optional[str], role_hint: Optional[str] = None) -> List[ConversationDocument]:
        user_id = _require(user_id, "User ID is required")
        items = await self._conversation_repo.list_for_user(user_id)
        if not items and self._fallback is not None:
            items = await self._fallback.conversations_for(user_id, role_hint, self._conversation_repo)
            logger.info("Fallback produced %d conversations for user %s", len(items), user_id)
        items.sort(key=lambda c: (c["updated_at"], c["_id"]), reverse=True)
        return items

    async def get_messages(self, conversation_id: Optional[str]) -> List[MessageDocument]:
        conversation_id = _require(conversation_id, "Conversation ID is required")
        await self._get_conversation(conversation_id)
        return await self._message_repo.get_messages_by_conversation(conversation_id)

    async def send_message(self, data: SendMessageInput) -> MessageDocument:
        sender_id = (data.sender_id or "").strip()
        text = (data.message_text or "").strip()
        if not sender_id or not text:
            raise ValidationFailed("Sender ID and message text are required")

        # checked before anything is read or written
        if data.recipient_role is not None and not policy.is_allowed(data.sender_role, data.recipient_role):
            logger.warning(
                "Rejected message from %s (%s) to %s (%s)",
                sender_id, data.sender_role, data.recipient_id, data.recipient_role,
            )
            raise ForbiddenParticipantPair(data.sender_role, data.recipient_role)

        if data.conversation_id and (
            not data.recipient_id or await self._conversation_repo.get(data.conversation_id) is not None
        ):
            conversation_id = data.conversation_id
        else:
            # no id, or a stale one with a recipient to open a conversation with
            recipient_id = _require(data.recipient_id, "Recipient ID is required to start a conversation")
            convo = await self._resolve_conversation(
                sender_id,
                data.sender_role,
                recipient_id,
                data.recipient_role,
                data.property_id,
                data.property_title,
            )
            conversation_id = convo["_id"]

        async with self._locks.hold(conversation_id):
            convo = await self._get_conversation(conversation_id)
            return await self._append(convo, sender_id, data.recipient_id, text)

    async def mark_read(self, conversation_id: Optional[str], reader_user_id: Optional[str]) -> int:
        conversation_id = _require(conversation_id, "Conversation ID is required")
        reader_user_id = _require(reader_user_id, "User ID is required")
        async with self._locks.hold(conversation_id):
            await self._get_conversation(conversation_id)
            modified = await self._message_repo.mark_read(conversation_id, reader_user_id)
            remaining = await self._message_repo.count_unread(conversation_id, reader_user_id)
            await self._conversation_repo.set_unread(conversation_id, reader_user_id, remaining)
        logger.debug("Marked %d messages read in %s for %s", modified, conversation_id, reader_user_id)
        return modified

    async def ensure_conversation(
        self,
        user_id: Optional[str],
        other_user_id: Optional[str],
        property_id: Optional[str] = None,
        property_title: Optional[str] = None,
    ) -> ConversationDocument:
        user_id = _require(user_id, "User ID is required")
        other_user_id = _require(other_user_id, "Other user ID is required")
        return await self._resolve_conversation(user_id, None, other_user_id, None, property_id, property_title)

    async def unread_summary(self, user_id: Optional[str]) -> Dict[str, object]:
        user_id = _require(user_id, "User ID is required")
        counts = {
            c["_id"]: (c.get("unread_counters") or {}).get(user_id, 0)
            for c in await self._conversation_repo.list_for_user(user_id)
        }
        return {"total": sum(counts.values()), "conversations": counts}

    async def _get_conversation(self, conversation_id: str) -> ConversationDocument:
        convo = await self._conversation_repo.get(conversation_id)
        if convo is None:
            raise ConversationNotFound(conversation_id)
        return convo

    async def _resolve_conversation(
        self,
        sender_id: str,
        sender_role: Optional[str],
        recipient_id: str,
        recipient_role: Optional[str],
        property_id: Optional[str],
        property_title: Optional[str],
    ) -> ConversationDocument:
        if sender_id == recipient_id:
            raise ValidationFailed("Sender and recipient must be different users")
        pair_key = "pair:{}:{}:{}".format(*sorted([sender_id, recipient_id]), property_id or "")
        async with self._locks.hold(pair_key):
            existing = await self._conversation_repo.find_by_pair(sender_id, recipient_id, property_id)
            if existing is not None:
                return existing
            sender = await self._resolve_participant(sender_id, sender_role)
            recipient = await self._resolve_participant(recipient_id, recipient_role)
            if not policy.is_allowed(sender["role"], recipient["role"]):
                logger.warning("Refused to open %s/%s conversation between %s and %s",
                               sender["role"], recipient["role"], sender_id, recipient_id)
                raise ForbiddenParticipantPair(sender["role"], recipient["role"])
            now = self._clock()
            created = await self._conversation_repo.create(ConversationDocument(
                type=policy.conversation_type(sender["role"], recipient["role"]),
                property_id=property_id,
                property_title=property_title,
                participants=[sender, recipient],
                participant_ids=sorted([sender_id, recipient_id]),
                last_message=None,
                unread_counters={sender_id: 0, recipient_id: 0},
                created_at=now,
                updated_at=now,
            ))
        logger.info("Opened %s conversation %s for property %s", created["type"], created["_id"], property_id)
        return created

    async def _resolve_participant(self, user_id: str, declared_role: Optional[str]) -> ParticipantDocument:
        participant = await self._participants.get_participant(user_id)
        if participant is not None:
            if declared_role and declared_role != participant["role"]:
                logger.warning("User %s declared role %s but is registered as %s", user_id, declared_role, participant["role"])
            return participant
        if self._trust_declared_roles and declared_role:
            return ParticipantDocument(user_id=user_id, name=user_id, role=declared_role, email="")  # type: ignore[typeddict-item]
        raise UnknownParticipant(user_id)

    async def _append(
        self,
        convo: ConversationDocument,
        sender_id: str,
        recipient_id: Optional[str],
        text: str,
    ) -> MessageDocument:
        sender = next((p for p in convo["participants"] if p["user_id"] == sender_id), None)
        other = next((p for p in convo["participants"] if p["user_id"] != sender_id), None)
        if sender is None or other is None:
            raise ValidationFailed("Sender is not a participant in this conversation")
        if recipient_id and recipient_id != other["user_id"]:
            raise ValidationFailed("Recipient is not a participant in this conversation")
        policy.ensure_allowed(sender["role"], other["role"])

        timestamp = self._clock()
        last = convo.get("last_message")
        if last is not None and last["timestamp"] > timestamp:
            # never order a new message before the current last one
            timestamp = last["timestamp"]

        message = await self._message_repo.save_message(convo["_id"], sender_id, text, timestamp)
        await self._conversation_repo.update_on_new_message(
            convo["_id"],
            LastMessageDocument(
                id=message["_id"],
                sender_id=sender_id,
                message_text=text,
                timestamp=timestamp,
            ),
            receiver_id=other["user_id"],
        )
        logger.info("Message %s sent in conversation %s by %s", message["_id"], convo["_id"], sender_id)
        return message


def _require(value: Optional[str], error: str) -> str:
    if value is None or not value.strip():
        raise ValidationFailed(error)
    return value.strip()
