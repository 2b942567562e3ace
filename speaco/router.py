from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .codec import decode
from .constants import (
    JOINED_FMT,
    T_ATTACHMENT_ADDED,
    T_ATTACHMENT_FETCHED,
    T_MESSAGE_DELETED,
    T_MESSAGE_UPDATED,
    EventType,
)
from .envelope import parse_event
from .errors import (
    AttachmentNotFound,
    ChatError,
    NotAuthorized,
    ValidationError,
)
from .util import fmt_channel_id, is_number

if TYPE_CHECKING:
    from .service import ChatService
    from .session import Session
    from .transport import Channel


class EventRouter:
    """
    Handles event routing and dispatching for the speaco hub.

    This class is responsible for:
    - Decoding and validating incoming frames
    - Enforcing that every event but JOIN comes from a joined session
    - Per-event field validation
    - Dispatching to the history, attachment and session components
    - Turning any failure into ERROR + disconnect for the offending session
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("speaco.router")

    def route_frame(
        self,
        channel: Channel,
        data: str | bytes,
        outgoing: list[tuple[Channel, str | None]],
    ) -> None:
        """
        Main entry point for routing an incoming frame.

        This method should be called with the state lock held.
        """
        sess = self.hub.session_manager.get_session(channel)
        if sess is None:
            return

        try:
            env = decode(data)
            t = parse_event(env)
            if self.log.isEnabledFor(logging.DEBUG):
                self.log.debug(
                    "RX nick=%r channel_id=%s t=%s chars=%s",
                    sess.nickname,
                    fmt_channel_id(channel),
                    t.value,
                    len(data),
                )
            self._dispatch(sess, t, env, outgoing)
        except ChatError as e:
            self.log.info(
                "Rejected event nick=%r channel_id=%s err=%s: %s",
                sess.nickname,
                fmt_channel_id(channel),
                type(e).__name__,
                e.message,
            )
            self.hub.message_helper.emit_error(outgoing, channel, e.message)

    def _dispatch(
        self,
        sess: Session,
        t: EventType,
        env: dict[str, Any],
        outgoing: list[tuple[Channel, str | None]],
    ) -> None:
        if t is EventType.JOIN:
            self._handle_join(sess, env, outgoing)
            return

        if not sess.authorized:
            raise NotAuthorized()

        if t is EventType.MESSAGE:
            self._handle_message(sess, env, outgoing)
        elif t is EventType.EDIT_MESSAGE:
            self._handle_edit_message(sess, env, outgoing)
        elif t is EventType.DELETE_MESSAGE:
            self._handle_delete_message(sess, env, outgoing)
        elif t is EventType.ADD_ATTACHMENT:
            self._handle_add_attachment(sess, env, outgoing)
        elif t is EventType.FETCH_ATTACHMENT:
            self._handle_fetch_attachment(sess, env, outgoing)

    def _handle_join(
        self,
        sess: Session,
        env: dict[str, Any],
        outgoing: list[tuple[Channel, str | None]],
    ) -> None:
        chatter = self.hub.session_manager.join(sess, env.get("nickname"))

        helper = self.hub.message_helper
        helper.queue_welcome(outgoing, sess.channel)
        helper.post_message(outgoing, None, JOINED_FMT.format(nickname=chatter.nickname))

    def _check_message_fields(self, env: dict[str, Any]) -> tuple[str, str | None]:
        """Validate text and attachment shared by MESSAGE and EDIT_MESSAGE."""
        text = env.get("text")
        if not isinstance(text, str):
            raise ValidationError("client-sent message text isn't a string")
        if len(text) > int(self.hub.config.message_max_chars):
            raise ValidationError("client-sent message text is too long")

        attachment = env.get("attachment")
        if not attachment:
            return text, None
        if not isinstance(attachment, str):
            raise ValidationError("client-sent message attachment isn't a string")
        if attachment not in self.hub.attachments:
            raise ValidationError("client-sent message attachment doesn't exist")
        return text, attachment

    def _check_message_id(self, env: dict[str, Any]) -> int | float:
        mid = env.get("id")
        if not is_number(mid):
            raise ValidationError("client-sent message id isn't a number")
        return mid

    def _handle_message(
        self,
        sess: Session,
        env: dict[str, Any],
        outgoing: list[tuple[Channel, str | None]],
    ) -> None:
        text, attachment = self._check_message_fields(env)
        self.hub.message_helper.post_message(outgoing, sess, text, attachment)

    def _handle_edit_message(
        self,
        sess: Session,
        env: dict[str, Any],
        outgoing: list[tuple[Channel, str | None]],
    ) -> None:
        text, attachment = self._check_message_fields(env)
        mid = self._check_message_id(env)

        message = self.hub.history.edit(sess.nickname, mid, text, attachment)
        if message is None:
            self.log.debug("Edit matched nothing nick=%r id=%r", sess.nickname, mid)
            return

        self.hub.session_manager.broadcast(outgoing, T_MESSAGE_UPDATED, message.to_dict())

    def _handle_delete_message(
        self,
        sess: Session,
        env: dict[str, Any],
        outgoing: list[tuple[Channel, str | None]],
    ) -> None:
        mid = self._check_message_id(env)

        removed = self.hub.history.delete(sess.nickname, mid)
        self.log.debug("Deleted nick=%r id=%r removed=%s", sess.nickname, mid, removed)

        # Sent whether or not anything matched.
        self.hub.session_manager.broadcast(
            outgoing, T_MESSAGE_DELETED, {"sender": sess.nickname, "id": mid}
        )

    def _handle_add_attachment(
        self,
        sess: Session,
        env: dict[str, Any],
        outgoing: list[tuple[Channel, str | None]],
    ) -> None:
        name = env.get("name")
        if name and not isinstance(name, str):
            raise ValidationError("client-sent attachment name isn't a string")

        attachment_id = self.hub.attachments.add(
            name or None, env.get("data"), owner=sess.nickname
        )
        self.hub.message_helper.queue_env(
            outgoing, sess.channel, T_ATTACHMENT_ADDED, {"id": attachment_id}
        )

    def _handle_fetch_attachment(
        self,
        sess: Session,
        env: dict[str, Any],
        outgoing: list[tuple[Channel, str | None]],
    ) -> None:
        attachment_id = env.get("id")
        if not isinstance(attachment_id, str):
            raise ValidationError("client-sent attachment id isn't a string")

        att = self.hub.attachments.fetch(attachment_id)
        if att is None:
            raise AttachmentNotFound()

        # data is None once the payload has been evicted.
        body: dict[str, Any] = {"data": att.data}
        if att.name is not None:
            body["name"] = att.name
        self.hub.message_helper.queue_env(outgoing, sess.channel, T_ATTACHMENT_FETCHED, body)
