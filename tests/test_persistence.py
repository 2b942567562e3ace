import cbor2
from conftest import connect, send_event

from speaco.persistence import Snapshot, SnapshotStore


def test_snapshot_round_trip_restores_state(make_hub) -> None:
    hub = make_hub()
    alice = connect(hub, "a", "alice")
    send_event(hub, alice, "add-attachment", name="doc", data="ZG9j")
    aid = alice.events("attachment-added")[0]["id"]
    send_event(hub, alice, "message", text="one", attachment=aid)
    send_event(hub, alice, "message", text="two")
    send_event(hub, alice, "edit-message", id=1, text="two (edited)")
    assert hub.save_snapshot()

    fresh = make_hub()
    assert fresh.load_snapshot()

    assert fresh.history.snapshot() == hub.history.snapshot()
    assert fresh.attachments.snapshot() == hub.attachments.snapshot()
    assert fresh.session_manager.snapshot_chatters() == {"alice": {"currentMessageId": 2}}

    # Counters carry on where they left off.
    again = connect(fresh, "a2", "alice")
    send_event(fresh, again, "message", text="three")
    assert again.events("message")[-1]["id"] == 2
    assert fresh.history.find("alice", 1).edited is True


def test_snapshot_keeps_tombstones(make_hub) -> None:
    hub = make_hub(history_size=1)
    alice = connect(hub, "a", "alice")
    send_event(hub, alice, "add-attachment", name="gone", data="x")
    aid = alice.events("attachment-added")[0]["id"]
    send_event(hub, alice, "message", text="ref", attachment=aid)
    send_event(hub, alice, "message", text="evicts ref")
    hub.save_snapshot()

    fresh = make_hub(history_size=1)
    fresh.load_snapshot()
    att = fresh.attachments.fetch(aid)
    assert att is not None
    assert att.name == "gone"
    assert att.data is None


def test_snapshot_file_schema(tmp_path) -> None:
    path = tmp_path / "snap.cbor"
    store = SnapshotStore(str(path))
    snap = Snapshot(
        chatter_data={"alice": {"currentMessageId": 3}},
        history=[],
        attachments={"f" * 40: {"name": None, "data": "x"}},
    )
    assert store.save(snap)

    with open(path, "rb") as f:
        raw = cbor2.load(f)
    assert raw == {
        "chatter-data": {"alice": {"currentMessageId": 3}},
        "history": [],
        "attachments": {"f" * 40: {"name": None, "data": "x"}},
    }
    assert not (tmp_path / "snap.cbor.tmp").exists()


def test_load_missing_file_starts_empty(make_hub) -> None:
    hub = make_hub()
    assert hub.load_snapshot() is False
    assert len(hub.history) == 0


def test_load_ignores_garbage(tmp_path) -> None:
    path = tmp_path / "snap.cbor"
    path.write_bytes(b"\xff\x00 definitely not cbor")
    assert SnapshotStore(str(path)).load() is None

    path.write_bytes(cbor2.dumps(["a", "list"]))
    assert SnapshotStore(str(path)).load() is None

    path.write_bytes(cbor2.dumps({"history": "nope"}))
    assert SnapshotStore(str(path)).load() is None


def test_save_failure_is_swallowed(tmp_path) -> None:
    blocker = tmp_path / "occupied"
    blocker.write_text("a file, not a directory")
    store = SnapshotStore(str(blocker / "snap.cbor"))
    assert store.save(Snapshot()) is False


def test_persistence_can_be_disabled() -> None:
    store = SnapshotStore(None)
    assert store.save(Snapshot()) is False
    assert store.load() is None
