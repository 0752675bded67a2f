"""Store interfaces the chat service depends on.

``ChatService`` only ever talks to these protocols. The MongoDB repositories
and the in-memory ones in ``repositories.memory`` both satisfy them.
"""

import functools
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Protocol, TypeVar

from pymongo.errors import PyMongoError

from onlyif_messaging.models.conversation import ConversationDocument, LastMessageDocument
from onlyif_messaging.models.message import MessageDocument
from onlyif_messaging.models.participant import ParticipantDocument
from onlyif_messaging.utils.errors import UpstreamUnavailable


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConversationStore(Protocol):

    async def get(self, conversation_id: str) -> Optional[ConversationDocument]: ...

    async def find_by_pair(self, user_a: str, user_b: str, property_id: Optional[str]) -> Optional[ConversationDocument]: ...

    async def create(self, doc: ConversationDocument) -> ConversationDocument: ...

    async def list_for_user(self, user_id: str) -> List[ConversationDocument]: ...

    async def list_with_role(self, role: str) -> List[ConversationDocument]: ...

    async def update_on_new_message(self, conversation_id: str, last_message: LastMessageDocument, receiver_id: str) -> None: ...

    async def set_unread(self, conversation_id: str, user_id: str, count: int) -> None: ...

    async def ping(self) -> bool: ...


class MessageStore(Protocol):

    async def save_message(self, conversation_id: str, sender_id: str, message_text: str, timestamp: datetime) -> MessageDocument: ...

    async def get_messages_by_conversation(self, conversation_id: str) -> List[MessageDocument]: ...

    async def mark_read(self, conversation_id: str, reader_id: str) -> int: ...

    async def count_unread(self, conversation_id: str, reader_id: str) -> int: ...


class ParticipantRegistry(Protocol):

    async def get_participant(self, user_id: str) -> Optional[ParticipantDocument]: ...


def translate_store_errors(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Report driver failures as ``UpstreamUnavailable`` instead of a 500."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except PyMongoError as exc:
            logger.error("Store call %s failed: %s", func.__qualname__, exc)
            raise UpstreamUnavailable() from exc

    return wrapper
