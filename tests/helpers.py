"""Shared fixtures for the messaging tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from onlyif_messaging.models.participant import ParticipantDocument
from onlyif_messaging.repositories.memory import (
    InMemoryConversationRepository,
    InMemoryMessageRepository,
    InMemoryParticipantRegistry,
)


BUYER = ParticipantDocument(user_id="b1", name="Bella Buyer", role="buyer", email="b1@example.com")
BUYER_2 = ParticipantDocument(user_id="b2", name="Ben Buyer", role="buyer", email="b2@example.com")
SELLER = ParticipantDocument(user_id="s1", name="Sam Seller", role="seller", email="s1@example.com")
AGENT = ParticipantDocument(user_id="a1", name="Alex Agent", role="agent", email="a1@example.com")
AGENT_2 = ParticipantDocument(user_id="a2", name="Ava Agent", role="agent", email="a2@example.com")


class StepClock:
    """Deterministic clock; ``step=0`` makes every call return the same instant."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2024, 1, 20, 10, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


def make_stores():
    registry = InMemoryParticipantRegistry([BUYER, BUYER_2, SELLER, AGENT, AGENT_2])
    return InMemoryConversationRepository(), InMemoryMessageRepository(), registry
