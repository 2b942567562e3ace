import json

import pytest

from speaco.config import ChatRuntimeConfig
from speaco.service import ChatService


class FakeChannel:
    """In-memory stand-in for a transport connection."""

    def __init__(self, name: str) -> None:
        self.id = name
        self.sent: list[dict] = []
        self.terminated = False

    def send(self, payload: str) -> None:
        if self.terminated:
            raise ConnectionError("channel is closed")
        self.sent.append(json.loads(payload))

    def terminate(self) -> None:
        self.terminated = True

    def events(self, event_type: str | None = None) -> list[dict]:
        if event_type is None:
            return list(self.sent)
        return [e for e in self.sent if e.get("type") == event_type]

    def clear(self) -> None:
        self.sent.clear()


def send_event(hub: ChatService, channel: FakeChannel, event_type: str, **fields) -> None:
    hub.on_frame(channel, json.dumps({"type": event_type, **fields}))


def connect(hub: ChatService, name: str, nickname: str | None = None) -> FakeChannel:
    channel = FakeChannel(name)
    hub.on_connect(channel)
    if nickname is not None:
        send_event(hub, channel, "join", nickname=nickname)
    return channel


@pytest.fixture
def make_hub(tmp_path):
    def _make(**overrides) -> ChatService:
        overrides.setdefault("backup_path", str(tmp_path / "backup.cbor"))
        return ChatService(ChatRuntimeConfig(**overrides))

    return _make


@pytest.fixture
def hub(make_hub) -> ChatService:
    return make_hub()
