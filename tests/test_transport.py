import json

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect as ws_connect

from speaco.config import ChatRuntimeConfig
from speaco.service import ChatService


@pytest.fixture
def live_hub(tmp_path):
    hub = ChatService(
        ChatRuntimeConfig(
            host="127.0.0.1",
            port=0,
            backup_path=str(tmp_path / "backup.cbor"),
            event_size_limit=4096,
        )
    )
    hub.start()
    yield hub
    hub.stop()


def _url(hub: ChatService) -> str:
    return f"ws://127.0.0.1:{hub.transport.port}"


def _recv(ws) -> dict:
    return json.loads(ws.recv(timeout=5))


def test_join_over_websocket(live_hub) -> None:
    with ws_connect(_url(live_hub)) as ws:
        ws.send(json.dumps({"type": "join", "nickname": "alice"}))

        assert _recv(ws) == {"type": "welcome"}
        assert _recv(ws) == {"type": "messages", "messages": []}
        joined = _recv(ws)
        assert joined["type"] == "message"
        assert joined["text"] == "alice joined the party"

        ws.send(json.dumps({"type": "message", "text": "hi"}))
        msg = _recv(ws)
        assert (msg["sender"], msg["id"], msg["text"]) == ("alice", 0, "hi")


def test_departure_is_announced(live_hub) -> None:
    with ws_connect(_url(live_hub)) as alice:
        alice.send(json.dumps({"type": "join", "nickname": "alice"}))
        for _ in range(3):
            _recv(alice)

        with ws_connect(_url(live_hub)) as bob:
            bob.send(json.dumps({"type": "join", "nickname": "bob"}))
            assert _recv(alice)["text"] == "bob joined the party"

        assert _recv(alice)["text"] == "bob left"


def test_oversized_frame_closes_with_1009(live_hub) -> None:
    with ws_connect(_url(live_hub)) as ws:
        ws.send(json.dumps({"type": "join", "nickname": "x" * 8192}))
        with pytest.raises(ConnectionClosed) as excinfo:
            ws.recv(timeout=5)

    assert excinfo.value.rcvd is not None
    assert excinfo.value.rcvd.code == 1009


def test_error_closes_with_policy_violation(live_hub) -> None:
    with ws_connect(_url(live_hub)) as ws:
        ws.send(json.dumps({"type": "message", "text": "no join"}))
        assert _recv(ws) == {"type": "error", "message": "not authorized"}
        with pytest.raises(ConnectionClosed) as excinfo:
            ws.recv(timeout=5)

    assert excinfo.value.rcvd.code == 1008


def test_stop_sends_shutdown_then_bye(live_hub) -> None:
    with ws_connect(_url(live_hub)) as ws:
        ws.send(json.dumps({"type": "join", "nickname": "alice"}))
        for _ in range(3):
            _recv(ws)

        live_hub.stop()

        shutdown = _recv(ws)
        assert shutdown["type"] == "message"
        assert shutdown["sender"] is None
        assert shutdown["text"] == "The server shut down"
        assert _recv(ws) == {"type": "bye"}
        with pytest.raises(ConnectionClosed):
            ws.recv(timeout=5)
