"""Crash-recovery snapshots for the speaco hub.

The snapshot is a single CBOR map::

    {
        "chatter-data": {nickname: {"currentMessageId": int}},
        "history": [message, ...],
        "attachments": {id: {"name": str | None, "data": str | None}},
    }

Persistence is advisory. Nothing here raises on I/O or decode failures.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import cbor2

from .constants import S_ATTACHMENTS, S_CHATTER_DATA, S_HISTORY
from .util import expand_path


@dataclass
class Snapshot:
    chatter_data: dict[str, Any] = field(default_factory=dict)
    history: list[Any] = field(default_factory=list)
    attachments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            S_CHATTER_DATA: self.chatter_data,
            S_HISTORY: self.history,
            S_ATTACHMENTS: self.attachments,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Snapshot:
        if not isinstance(data, dict):
            raise ValueError("snapshot must be a map")

        chatter_data = data.get(S_CHATTER_DATA, {})
        history = data.get(S_HISTORY, [])
        attachments = data.get(S_ATTACHMENTS, {})

        if not isinstance(chatter_data, dict):
            raise ValueError(f"{S_CHATTER_DATA} must be a map")
        if not isinstance(history, list):
            raise ValueError(f"{S_HISTORY} must be a list")
        if not isinstance(attachments, dict):
            raise ValueError(f"{S_ATTACHMENTS} must be a map")

        return cls(chatter_data=chatter_data, history=history, attachments=attachments)


class SnapshotStore:
    """Reads and writes the hub snapshot file."""

    def __init__(self, path: str | None) -> None:
        self.log = logging.getLogger("speaco.persistence")
        self.path = Path(expand_path(path)) if path else None

    def save(self, snapshot: Snapshot) -> bool:
        if self.path is None:
            return False

        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                cbor2.dump(snapshot.to_dict(), f)
            os.replace(tmp, self.path)
        except Exception:
            self.log.warning("Failed to write snapshot path=%s", self.path, exc_info=True)
            try:
                tmp.unlink(missing_ok=True)
            except Exception:
                pass
            return False

        self.log.info(
            "Snapshot written path=%s chatters=%s messages=%s attachments=%s",
            self.path,
            len(snapshot.chatter_data),
            len(snapshot.history),
            len(snapshot.attachments),
        )
        return True

    def load(self) -> Snapshot | None:
        if self.path is None or not self.path.exists():
            return None

        try:
            with open(self.path, "rb") as f:
                data = cbor2.load(f)
            snapshot = Snapshot.from_dict(data)
        except Exception as e:
            self.log.warning("Ignoring unreadable snapshot path=%s err=%s", self.path, e)
            return None

        self.log.info(
            "Snapshot loaded path=%s chatters=%s messages=%s attachments=%s",
            self.path,
            len(snapshot.chatter_data),
            len(snapshot.history),
            len(snapshot.attachments),
        )
        return snapshot
