"""Error taxonomy for the speaco hub.

Every error carries the text sent back to the client in an ``error`` event.
All of them are terminal for the offending session.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base hub error."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# --- Envelope structure ---


class ProtocolError(ChatError):
    """The frame is not a well-formed event envelope."""


class MalformedEvent(ProtocolError):
    def __init__(self, message: str = "malformed client-sent event") -> None:
        super().__init__(message)


class MissingType(ProtocolError):
    def __init__(self) -> None:
        super().__init__("client-sent event without a type")


class UnknownEventType(ProtocolError):
    def __init__(self) -> None:
        super().__init__("illegal client-sent event type")


# --- Field checks ---


class ValidationError(ChatError):
    """A field has the wrong type, length, or refers to nothing."""


class InvalidNickname(ValidationError):
    def __init__(self, message: str = "illegal nickname") -> None:
        super().__init__(message)


class NicknameTaken(ValidationError):
    def __init__(self) -> None:
        super().__init__("this nickname is already used")


# --- Session state ---


class AuthorizationError(ChatError):
    """The event is not allowed in the session's current state."""


class NotAuthorized(AuthorizationError):
    def __init__(self) -> None:
        super().__init__("not authorized")


class AlreadyAuthorized(AuthorizationError):
    def __init__(self) -> None:
        super().__init__("already authorized")


# --- Lookups ---


class NotFoundError(ChatError):
    """A referenced entity does not exist."""


class AttachmentNotFound(NotFoundError):
    def __init__(self) -> None:
        super().__init__("this attachment doesn't exist")
