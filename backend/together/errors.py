"""Domain error taxonomy shared by the HTTP and realtime surfaces.

Every error carries the HTTP status code it maps to. HTTP endpoints render
them as ``{"success": false, "message": ...}``; the realtime gateway turns
them into error frames on the originating connection.
"""


class TogetherError(Exception):
    """Base class for all expected failures."""

    status_code: int = 500

    def __init__(self, message: str = "Server error") -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(TogetherError):
    """Missing, invalid or expired credential."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class Forbidden(TogetherError):
    status_code = 403


class NotAParticipant(Forbidden):
    def __init__(self, message: str = "You are not a participant of this conversation") -> None:
        super().__init__(message)


class NotFound(TogetherError):
    status_code = 404


class UserNotFound(NotFound):
    def __init__(self, message: str = "User not found") -> None:
        super().__init__(message)


class ConversationNotFound(NotFound):
    def __init__(self, message: str = "Conversation not found") -> None:
        super().__init__(message)


class MessageNotFound(NotFound):
    def __init__(self, message: str = "Message not found") -> None:
        super().__init__(message)


class TodoNotFound(NotFound):
    def __init__(self, message: str = "Todo not found") -> None:
        super().__init__(message)


class EventNotFound(NotFound):
    def __init__(self, message: str = "Event not found") -> None:
        super().__init__(message)


class ScheduleNotFound(NotFound):
    def __init__(self, message: str = "Schedule not found") -> None:
        super().__init__(message)


class BadRequest(TogetherError):
    status_code = 400


class InvalidMessage(BadRequest):
    def __init__(self, message: str = "Message content is required") -> None:
        super().__init__(message)


class PersistenceFailure(TogetherError):
    """The document store rejected or failed a write."""

    status_code = 500

    def __init__(self, message: str = "Failed to persist changes") -> None:
        super().__init__(message)


class PayloadTooLarge(TogetherError):
    status_code = 413
