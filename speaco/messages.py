"""Event queueing helpers for the speaco hub."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .codec import encode
from .constants import T_ERROR, T_MESSAGE, T_MESSAGES, T_WELCOME
from .envelope import make_envelope
from .errors import NotAuthorized
from .history import Message
from .util import fmt_channel_id

if TYPE_CHECKING:
    from .service import ChatService
    from .session import Session
    from .transport import Channel


class MessageHelper:
    """
    Helper methods for building outgoing events.

    Handles:
    - Event queueing (outgoing lists)
    - WELCOME and history replay
    - Posting chat and system messages into history
    - Error emission followed by channel termination

    Everything here only appends to ``outgoing``; the hub delivers the
    queue after the state lock is released. A ``None`` payload closes the
    channel once everything queued before it has been sent.
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = hub.log

    def queue_env(
        self,
        outgoing: list[tuple[Channel, str | None]],
        channel: Channel,
        event_type: str,
        body: dict[str, Any] | None = None,
    ) -> None:
        """Encode and queue a single event."""
        outgoing.append((channel, encode(make_envelope(event_type, body))))

    def queue_terminate(
        self, outgoing: list[tuple[Channel, str | None]], channel: Channel
    ) -> None:
        outgoing.append((channel, None))

    def queue_welcome(
        self, outgoing: list[tuple[Channel, str | None]], channel: Channel
    ) -> None:
        """Queue WELCOME and the full history replay for a new chatter."""
        self.queue_env(outgoing, channel, T_WELCOME, {})
        history = self.hub.history.snapshot()
        self.queue_env(outgoing, channel, T_MESSAGES, {"messages": history})
        self.log.debug(
            "Queued WELCOME messages=%s channel_id=%s",
            len(history),
            fmt_channel_id(channel),
        )

    def post_message(
        self,
        outgoing: list[tuple[Channel, str | None]],
        sender: Session | None,
        text: str,
        attachment: str | None = None,
    ) -> Message:
        """
        Append a message to history and broadcast it.

        ``sender`` of None posts a system message.
        """
        if sender is None:
            message = Message.system(text)
        elif sender.chatter is None:
            raise NotAuthorized()
        else:
            message = Message(
                sender=sender.chatter.nickname,
                id=sender.chatter.take_message_id(),
                text=text,
                attachment=attachment,
            )

        self.hub.history.append(message)
        self.hub.session_manager.broadcast(outgoing, T_MESSAGE, message.to_dict())
        return message

    def emit_error(
        self,
        outgoing: list[tuple[Channel, str | None]],
        channel: Channel,
        text: str,
    ) -> None:
        """Queue an ERROR and close the channel after it is sent."""
        self.queue_env(outgoing, channel, T_ERROR, {"message": text})
        self.queue_terminate(outgoing, channel)
