from __future__ import annotations

import logging
import signal
import threading
import time
from collections import deque
from typing import Callable

from . import __version__
from .attachments import AttachmentStore
from .config import ChatRuntimeConfig
from .constants import LEFT_FMT, SHUTDOWN_TEXT, T_BYE
from .history import HistoryLog
from .messages import MessageHelper
from .persistence import Snapshot, SnapshotStore
from .router import EventRouter
from .session import SessionManager
from .transport import Channel, WebSocketTransport
from .util import fmt_channel_id


class ChannelOutbox:
    """
    Ordered send queue for one channel.

    Events are put while the state lock is held, so each channel sees them in
    the order the hub produced them. Any thread may drain, but only one
    drains a given outbox at a time; the others leave their events for it.
    """

    def __init__(self, channel: Channel) -> None:
        self.channel = channel
        self._lock = threading.Lock()
        self._queue: deque[str | None] = deque()
        self._draining = False

    def put(self, payload: str | None) -> None:
        with self._lock:
            self._queue.append(payload)

    def drain(self, send: Callable[[Channel, str | None], None]) -> None:
        with self._lock:
            if self._draining:
                return
            self._draining = True

        while True:
            with self._lock:
                if not self._queue:
                    self._draining = False
                    return
                payload = self._queue.popleft()
            send(self.channel, payload)


class ChatService:
    def __init__(self, config: ChatRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("speaco.hub")

        # Connection threads call in concurrently. All shared state (sessions,
        # chatters, history, attachments) is guarded by one re-entrant lock.
        self._state_lock = threading.RLock()

        self._shutdown = threading.Event()
        self._stopped = False

        # Per-channel send queues, filled under the state lock
        self._outboxes: dict[Channel, ChannelOutbox] = {}

        self.attachments = AttachmentStore(config.attachment_max_chars)
        self.history = HistoryLog(self.attachments, config.history_size)

        # Connected sessions and persistent chatter records
        self.session_manager = SessionManager(self)

        # Outgoing event construction
        self.message_helper = MessageHelper(self)

        # Event decoding, validation and dispatch
        self.router = EventRouter(self)

        self.snapshot_store = SnapshotStore(config.backup_path)

        self.transport: WebSocketTransport | None = None

    def start(self) -> None:
        self.load_snapshot()

        self.transport = WebSocketTransport(self)
        self.transport.start()

        self.log.info("speaco %s running", __version__)
        self.log.info(
            "Policy nick_max_chars=%s history_size=%s message_max_chars=%s "
            "attachment_max_chars=%s event_size_limit=%s",
            self.config.nick_max_chars,
            self.config.history_size,
            self.config.message_max_chars,
            self.config.attachment_max_chars,
            self.config.event_size_limit,
        )

    def run_forever(self) -> None:
        if self.transport is None:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self.stop())
        signal.signal(signal.SIGTERM, lambda *_: self.stop())

        while not self._shutdown.is_set():
            time.sleep(0.25)

    def stop(self) -> None:
        """Announce shutdown, persist state, say bye and close every channel."""
        announce: list[tuple[Channel, str | None]] = []
        farewell: list[tuple[Channel, str | None]] = []

        with self._state_lock:
            if self._stopped:
                return
            self._stopped = True

            self.message_helper.post_message(announce, None, SHUTDOWN_TEXT)
            snapshot = self._snapshot_locked()
            stats = self.session_manager.get_stats()

            # Cleared first so the close callbacks don't post "left" messages.
            channels = self.session_manager.clear_all()
            for channel in channels:
                self.message_helper.queue_env(farewell, channel, T_BYE, {})
                self.message_helper.queue_terminate(farewell, channel)
            boxes = self._enqueue_locked(announce)

        self._flush(boxes)
        self.snapshot_store.save(snapshot)

        with self._state_lock:
            boxes = self._enqueue_locked(farewell)
        self._flush(boxes)

        if self.transport is not None:
            self.transport.stop()

        self.log.info(
            "Hub stopped sessions=%s authorized=%s chatters=%s",
            stats["total"],
            stats["authorized"],
            stats["chatters"],
        )
        self._shutdown.set()

    def load_snapshot(self) -> bool:
        snapshot = self.snapshot_store.load()
        if snapshot is None:
            return False

        with self._state_lock:
            self.session_manager.restore_chatters(snapshot.chatter_data)
            self.attachments.restore(snapshot.attachments)
            # After attachments, so over-capacity restores null the right payloads.
            self.history.restore(snapshot.history)
        return True

    def save_snapshot(self) -> bool:
        with self._state_lock:
            snapshot = self._snapshot_locked()
        return self.snapshot_store.save(snapshot)

    def _snapshot_locked(self) -> Snapshot:
        return Snapshot(
            chatter_data=self.session_manager.snapshot_chatters(),
            history=self.history.snapshot(),
            attachments=self.attachments.snapshot(),
        )

    def on_connect(self, channel: Channel) -> None:
        with self._state_lock:
            if self._stopped:
                refused = True
            else:
                refused = False
                self.session_manager.on_channel_open(channel)

        if refused:
            self._terminate(channel)

    def on_frame(self, channel: Channel, data: str | bytes) -> None:
        # Keep state mutations under the shared lock, but never hold it while
        # sending.
        outgoing: list[tuple[Channel, str | None]] = []
        with self._state_lock:
            self.router.route_frame(channel, data, outgoing)
            boxes = self._enqueue_locked(outgoing)

        if self.log.isEnabledFor(logging.DEBUG) and outgoing:
            self.log.debug(
                "Sending %d event(s) channel_id=%s",
                len(outgoing),
                fmt_channel_id(channel),
            )

        self._flush(boxes)

    def on_close(self, channel: Channel) -> None:
        outgoing: list[tuple[Channel, str | None]] = []
        with self._state_lock:
            sess, nick = self.session_manager.on_channel_closed(channel)
            self._outboxes.pop(channel, None)
            if nick is not None:
                self.message_helper.post_message(
                    outgoing, None, LEFT_FMT.format(nickname=nick)
                )
            boxes = self._enqueue_locked(outgoing)

        if sess is not None:
            self.log.info(
                "Channel closed nick=%r channel_id=%s", nick, fmt_channel_id(channel)
            )

        self._flush(boxes)

    def _enqueue_locked(
        self, outgoing: list[tuple[Channel, str | None]]
    ) -> list[ChannelOutbox]:
        """Move an outbox list onto the per-channel queues. Needs the state lock."""
        boxes: list[ChannelOutbox] = []
        for channel, payload in outgoing:
            box = self._outboxes.get(channel)
            if box is None:
                box = self._outboxes[channel] = ChannelOutbox(channel)
            box.put(payload)
            if box not in boxes:
                boxes.append(box)
        return boxes

    def _flush(self, boxes: list[ChannelOutbox]) -> None:
        for box in boxes:
            box.drain(self._send_one)

    def _send_one(self, channel: Channel, payload: str | None) -> None:
        if payload is None:
            self._terminate(channel)
            return
        try:
            channel.send(payload)
        except Exception as e:
            self.log.warning(
                "Send failed channel_id=%s chars=%s err=%s",
                fmt_channel_id(channel),
                len(payload),
                e,
            )

    def _terminate(self, channel: Channel) -> None:
        try:
            channel.terminate()
        except Exception:
            self.log.debug(
                "Terminate failed channel_id=%s", fmt_channel_id(channel), exc_info=True
            )
