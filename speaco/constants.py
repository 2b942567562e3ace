# speaco protocol constants (event types, envelope keys and default limits)

from __future__ import annotations

from enum import Enum

# Envelope discriminator
K_TYPE = "type"


class EventType(str, Enum):
    """Client-to-server event types."""

    JOIN = "join"
    MESSAGE = "message"
    EDIT_MESSAGE = "edit-message"
    DELETE_MESSAGE = "delete-message"
    ADD_ATTACHMENT = "add-attachment"
    FETCH_ATTACHMENT = "fetch-attachment"


# Server-to-client event types
T_WELCOME = "welcome"
T_MESSAGES = "messages"
T_MESSAGE = "message"
T_MESSAGE_UPDATED = "message-updated"
T_MESSAGE_DELETED = "message-deleted"
T_ATTACHMENT_ADDED = "attachment-added"
T_ATTACHMENT_FETCHED = "attachment-fetched"
T_ERROR = "error"
T_BYE = "bye"

# Default limits. Character counts are Python str lengths.
EVENT_SIZE_LIMIT = 6 * 2**20
NICK_MAX_CHARS = 32
HISTORY_SIZE = 128
MESSAGE_MAX_CHARS = 1024
ATTACHMENT_MAX_CHARS = 5 * 2**20

# Attachment ids: ATTACHMENT_ID_GROUPS random 16-bit values, hex encoded.
ATTACHMENT_ID_GROUPS = 10

# Snapshot keys
S_CHATTER_DATA = "chatter-data"
S_HISTORY = "history"
S_ATTACHMENTS = "attachments"
S_CURRENT_MESSAGE_ID = "currentMessageId"

# System message texts
JOINED_FMT = "{nickname} joined the party"
LEFT_FMT = "{nickname} left"
SHUTDOWN_TEXT = "The server shut down"
