"""Who may message whom.

Buyers and sellers never talk directly; every buyer/seller exchange goes
through an agent. Pairs that are not listed (buyer/buyer, seller/seller) are
rejected as well.
"""

from typing import Dict, FrozenSet, Optional

from onlyif_messaging.models.conversation import ConversationType
from onlyif_messaging.utils.errors import ForbiddenParticipantPair


_ALLOWED_PAIRS: Dict[FrozenSet[str], ConversationType] = {
    frozenset(("buyer", "agent")): "buyer_agent",
    frozenset(("agent", "seller")): "agent_seller",
    frozenset(("agent",)): "agent_agent",
}


def is_allowed(sender_role: Optional[str], recipient_role: Optional[str]) -> bool:
    if not sender_role or not recipient_role:
        return False
    return frozenset((sender_role, recipient_role)) in _ALLOWED_PAIRS


def ensure_allowed(sender_role: Optional[str], recipient_role: Optional[str]) -> None:
    if not is_allowed(sender_role, recipient_role):
        raise ForbiddenParticipantPair(sender_role, recipient_role)


def conversation_type(role_a: str, role_b: str) -> ConversationType:
    """Return the conversation tag for a role pair, in either order."""
    ensure_allowed(role_a, role_b)
    return _ALLOWED_PAIRS[frozenset((role_a, role_b))]
