from typing import Literal, TypedDict


Role = Literal["buyer", "seller", "agent"]

ROLES = ("buyer", "seller", "agent")


class ParticipantDocument(TypedDict):
    user_id: str
    name: str
    role: Role
    email: str
