"""WebSocket transport for the speaco hub.

The hub depends only on the :class:`Channel` operations (``send`` and
``terminate``) and on three callbacks: ``on_connect``, ``on_frame`` and
``on_close``. Each connection is served on its own thread.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol

from websockets.exceptions import ConnectionClosed
from websockets.frames import CloseCode
from websockets.sync.server import Server, ServerConnection, serve

from .util import fmt_channel_id

if TYPE_CHECKING:
    from .service import ChatService


class Channel(Protocol):
    id: Any

    def send(self, payload: str) -> None: ...

    def terminate(self) -> None: ...


class WebSocketChannel:
    """Adapts a websockets server connection to the Channel contract."""

    def __init__(self, connection: ServerConnection) -> None:
        self.connection = connection
        self.id = connection.id

    def send(self, payload: str) -> None:
        self.connection.send(payload)

    def terminate(self) -> None:
        self.connection.close(CloseCode.POLICY_VIOLATION)

    def __repr__(self) -> str:
        return f"WebSocketChannel({fmt_channel_id(self)})"


class WebSocketTransport:
    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("speaco.transport")
        self._server: Server | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        cfg = self.hub.config
        self._server = serve(
            self._handle,
            cfg.host,
            int(cfg.port),
            max_size=int(cfg.event_size_limit),
        )
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="speaco-ws",
            daemon=True,
        )
        self._thread.start()
        self.log.info("Server started on %s:%s", cfg.host, self.port)

    @property
    def port(self) -> int | None:
        """Port actually bound, useful when configured with port 0."""
        if self._server is None:
            return None
        return self._server.socket.getsockname()[1]

    def stop(self) -> None:
        server = self._server
        self._server = None
        if server is None:
            return
        try:
            server.shutdown()
        except Exception:
            self.log.debug("Server shutdown failed", exc_info=True)
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def _handle(self, connection: ServerConnection) -> None:
        channel = WebSocketChannel(connection)
        self.hub.on_connect(channel)
        try:
            for data in connection:
                self.hub.on_frame(channel, data)
        except ConnectionClosed as e:
            # Includes frames over max_size (close code 1009).
            self.log.debug(
                "Connection closed channel_id=%s code=%s",
                fmt_channel_id(channel),
                e.rcvd.code if e.rcvd is not None else None,
            )
        finally:
            self.hub.on_close(channel)
