from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .codec import encode
from .constants import S_CURRENT_MESSAGE_ID
from .envelope import make_envelope
from .errors import AlreadyAuthorized, NicknameTaken
from .util import check_nick, fmt_channel_id

if TYPE_CHECKING:
    from .service import ChatService
    from .transport import Channel


@dataclass
class ChatterRecord:
    """Per-nickname identity that outlives connections and restarts."""

    nickname: str
    current_message_id: int = 0

    def take_message_id(self) -> int:
        mid = self.current_message_id
        self.current_message_id += 1
        return mid


@dataclass
class Session:
    channel: Channel
    chatter: ChatterRecord | None = None

    @property
    def authorized(self) -> bool:
        return self.chatter is not None

    @property
    def nickname(self) -> str | None:
        return self.chatter.nickname if self.chatter is not None else None


class SessionManager:
    """
    Tracks live sessions and the chatters behind them.

    This class is responsible for:
    - Session creation and teardown per channel
    - The one-way Unauthenticated -> Authorized transition
    - Exclusive nickname reservation while a session is live
    - Persistent ChatterRecords (message-id counters)
    - Broadcast fan-out to authorized sessions

    Must be called with state lock held.
    """

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("speaco.session")
        self.sessions: dict[Channel, Session] = {}
        self.chatters: dict[str, ChatterRecord] = {}
        self._index_by_nick: dict[str, Channel] = {}

    def on_channel_open(self, channel: Channel) -> Session:
        sess = Session(channel=channel)
        self.sessions[channel] = sess
        self.log.info("Session created channel_id=%s", fmt_channel_id(channel))
        return sess

    def on_channel_closed(self, channel: Channel) -> tuple[Session | None, str | None]:
        """
        Drop the session for ``channel``.

        Returns:
            (session, nickname) where nickname is set only if the session
            had joined.
        """
        sess = self.sessions.pop(channel, None)
        if sess is None:
            return None, None
        return sess, self.leave(sess)

    def join(self, sess: Session, nickname: Any) -> ChatterRecord:
        if sess.authorized:
            raise AlreadyAuthorized()

        nick = check_nick(nickname, int(self.hub.config.nick_max_chars))
        if nick in self._index_by_nick:
            raise NicknameTaken()

        chatter = self.chatters.get(nick)
        if chatter is None:
            chatter = ChatterRecord(nickname=nick)
            self.chatters[nick] = chatter

        sess.chatter = chatter
        self._index_by_nick[nick] = sess.channel

        self.log.info(
            "Joined nick=%r next_id=%s channel_id=%s",
            nick,
            chatter.current_message_id,
            fmt_channel_id(sess.channel),
        )
        return chatter

    def leave(self, sess: Session) -> str | None:
        """Release the session's nickname. Returns it if there was one."""
        nick = sess.nickname
        if nick is None:
            return None
        if self._index_by_nick.get(nick) is sess.channel:
            self._index_by_nick.pop(nick, None)
        return nick

    def get_session(self, channel: Channel) -> Session | None:
        return self.sessions.get(channel)

    def get_channel_by_nick(self, nick: str) -> Channel | None:
        return self._index_by_nick.get(nick)

    def authorized_channels(self) -> list[Channel]:
        return list(self._index_by_nick.values())

    def broadcast(
        self,
        outgoing: list[tuple[Channel, str | None]],
        event_type: str,
        body: dict[str, Any],
    ) -> None:
        """Queue one event for every authorized session."""
        payload = encode(make_envelope(event_type, body))
        for channel in self.authorized_channels():
            outgoing.append((channel, payload))

    def clear_all(self) -> list[Channel]:
        """
        Drop all live sessions and return their channels for teardown.

        Chatter records are kept.
        """
        channels = list(self.sessions.keys())
        self.sessions.clear()
        self._index_by_nick.clear()
        return channels

    def snapshot_chatters(self) -> dict[str, dict[str, int]]:
        return {
            nick: {S_CURRENT_MESSAGE_ID: rec.current_message_id}
            for nick, rec in self.chatters.items()
        }

    def restore_chatters(self, data: dict[str, Any]) -> None:
        self.chatters.clear()
        for nick, raw in data.items():
            if not isinstance(nick, str) or not isinstance(raw, dict):
                continue
            current = raw.get(S_CURRENT_MESSAGE_ID, 0)
            if not isinstance(current, int) or isinstance(current, bool):
                current = 0
            self.chatters[nick] = ChatterRecord(
                nickname=nick, current_message_id=max(0, current)
            )

    def get_stats(self) -> dict[str, Any]:
        total = len(self.sessions)
        authorized = sum(1 for s in self.sessions.values() if s.authorized)
        return {
            "total": total,
            "authorized": authorized,
            "chatters": len(self.chatters),
        }
