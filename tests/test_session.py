import json

import pytest
from conftest import FakeChannel

from speaco.errors import AlreadyAuthorized, InvalidNickname, NicknameTaken


def _open(hub, name: str):
    channel = FakeChannel(name)
    return channel, hub.session_manager.on_channel_open(channel)


def test_new_session_is_unauthenticated(hub) -> None:
    _, sess = _open(hub, "c1")
    assert not sess.authorized
    assert sess.nickname is None


def test_join_authorizes_and_creates_chatter(hub) -> None:
    sm = hub.session_manager
    channel, sess = _open(hub, "c1")

    chatter = sm.join(sess, "alice")

    assert sess.authorized
    assert sess.nickname == "alice"
    assert chatter.current_message_id == 0
    assert sm.chatters["alice"] is chatter
    assert sm.get_channel_by_nick("alice") is channel


def test_join_twice_is_rejected(hub) -> None:
    _, sess = _open(hub, "c1")
    hub.session_manager.join(sess, "alice")
    with pytest.raises(AlreadyAuthorized):
        hub.session_manager.join(sess, "bob")
    assert sess.nickname == "alice"


@pytest.mark.parametrize("nick", ["", None, 42, "two\nlines", ["alice"]])
def test_join_rejects_illegal_nicknames(hub, nick) -> None:
    _, sess = _open(hub, "c1")
    with pytest.raises(InvalidNickname) as exc:
        hub.session_manager.join(sess, nick)
    assert exc.value.message == "illegal nickname"
    assert not sess.authorized


def test_join_rejects_long_nicknames(make_hub) -> None:
    hub = make_hub(nick_max_chars=5)
    _, sess = _open(hub, "c1")
    hub.session_manager.join(sess, "abcde")

    _, other = _open(hub, "c2")
    with pytest.raises(InvalidNickname) as exc:
        hub.session_manager.join(other, "abcdef")
    assert exc.value.message == "this nickname is too long"


def test_nickname_is_exclusive_while_live(hub) -> None:
    sm = hub.session_manager
    first_channel, first = _open(hub, "c1")
    _, second = _open(hub, "c2")
    sm.join(first, "alice")

    with pytest.raises(NicknameTaken):
        sm.join(second, "alice")

    assert first.authorized
    assert not second.authorized
    assert sm.get_channel_by_nick("alice") is first_channel


def test_leave_releases_nickname_but_keeps_chatter(hub) -> None:
    sm = hub.session_manager
    c1, first = _open(hub, "c1")
    chatter = sm.join(first, "alice")
    chatter.take_message_id()
    chatter.take_message_id()

    sess, nick = sm.on_channel_closed(c1)
    assert sess is first
    assert nick == "alice"
    assert sm.get_channel_by_nick("alice") is None

    _, again = _open(hub, "c2")
    assert sm.join(again, "alice") is chatter
    assert chatter.take_message_id() == 2


def test_leave_of_unauthenticated_session_is_noop(hub) -> None:
    c1, _ = _open(hub, "c1")
    assert hub.session_manager.on_channel_closed(c1)[1] is None
    assert hub.session_manager.on_channel_closed(c1) == (None, None)


def test_broadcast_reaches_only_authorized_sessions(hub) -> None:
    sm = hub.session_manager
    c1, s1 = _open(hub, "c1")
    c2, s2 = _open(hub, "c2")
    c3, _ = _open(hub, "c3")
    sm.join(s1, "alice")
    sm.join(s2, "bob")

    outgoing = []
    sm.broadcast(outgoing, "message-deleted", {"sender": "alice", "id": 0})

    assert {ch for ch, _ in outgoing} == {c1, c2}
    for _, payload in outgoing:
        assert json.loads(payload) == {"sender": "alice", "id": 0, "type": "message-deleted"}
    assert c3 not in {ch for ch, _ in outgoing}


def test_clear_all_drops_sessions_and_keeps_chatters(hub) -> None:
    sm = hub.session_manager
    c1, s1 = _open(hub, "c1")
    c2, _ = _open(hub, "c2")
    sm.join(s1, "alice")

    assert set(sm.clear_all()) == {c1, c2}
    assert sm.sessions == {}
    assert sm.authorized_channels() == []
    assert "alice" in sm.chatters


def test_chatter_snapshot_round_trip(hub) -> None:
    sm = hub.session_manager
    _, s1 = _open(hub, "c1")
    sm.join(s1, "alice").current_message_id = 17

    data = sm.snapshot_chatters()
    assert data == {"alice": {"currentMessageId": 17}}

    sm.restore_chatters({**data, "bad": "record", "bob": {"currentMessageId": "x"}})
    assert sm.chatters["alice"].current_message_id == 17
    assert sm.chatters["bob"].current_message_id == 0
    assert "bad" not in sm.chatters
