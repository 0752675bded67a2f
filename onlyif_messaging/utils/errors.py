"""Error taxonomy for the messaging service.

Each error carries a machine-readable ``code`` and the HTTP status it maps to.
Routers never build error responses themselves; the handlers registered in
``onlyif_messaging.main`` render every ``MessagingError`` as
``{"success": false, "error": <message>}``.
"""

from typing import Optional


class MessagingError(Exception):

    code = "MESSAGING_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(MessagingError):

    code = "VALIDATION_ERROR"
    status_code = 400


class UnknownParticipant(MessagingError):

    code = "UNKNOWN_PARTICIPANT"
    status_code = 400

    def __init__(self, user_id: Optional[str]) -> None:
        super().__init__(f"Unknown participant: {user_id}")
        self.user_id = user_id


class ForbiddenParticipantPair(MessagingError):

    code = "FORBIDDEN_PARTICIPANT_PAIR"
    status_code = 403

    MESSAGE = (
        "Direct communication between buyers and sellers is not allowed. "
        "Please communicate through an agent."
    )

    def __init__(self, sender_role: Optional[str], recipient_role: Optional[str]) -> None:
        super().__init__(self.MESSAGE)
        self.sender_role = sender_role
        self.recipient_role = recipient_role


class ConversationNotFound(MessagingError):

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, conversation_id: str) -> None:
        super().__init__("Conversation not found")
        self.conversation_id = conversation_id


class UpstreamUnavailable(MessagingError):

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503

    def __init__(self, message: str = "Failed to connect to backend server") -> None:
        super().__init__(message)
