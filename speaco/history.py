"""Bounded message history for the speaco hub."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

from .attachments import AttachmentStore
from .constants import HISTORY_SIZE
from .util import now_iso


@dataclass
class Message:
    sender: str | None
    id: int | float | None
    text: str
    attachment: str | None = None
    timestamp: str = field(default_factory=now_iso)
    edited: bool = False

    @classmethod
    def system(cls, text: str) -> Message:
        """A hub-authored message; it has no sender and no id."""
        return cls(sender=None, id=None, text=text)

    @property
    def is_system(self) -> bool:
        return self.sender is None

    @property
    def key(self) -> tuple[str, int | float] | None:
        if self.sender is None or self.id is None:
            return None
        return (self.sender, self.id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "id": self.id,
            "text": self.text,
            "attachment": self.attachment,
            "timestamp": self.timestamp,
            "edited": self.edited,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Message:
        sender = raw.get("sender")
        mid = raw.get("id")
        attachment = raw.get("attachment")
        timestamp = raw.get("timestamp")
        return cls(
            sender=sender if isinstance(sender, str) else None,
            id=mid if isinstance(mid, (int, float)) and not isinstance(mid, bool) else None,
            text=str(raw.get("text") or ""),
            attachment=attachment if isinstance(attachment, str) and attachment else None,
            timestamp=timestamp if isinstance(timestamp, str) else now_iso(),
            edited=bool(raw.get("edited", False)),
        )


class HistoryLog:
    """
    Ordered, capacity-bounded message history.

    Messages live in insertion-ordered slots. A (sender, id) index makes
    edit/delete lookups independent of history length; system messages are
    never indexed, so they can't be edited or deleted.

    Overflowing the capacity evicts the oldest message and drops the payload
    of the attachment it referenced.

    Must be used with the hub state lock held.
    """

    def __init__(self, attachments: AttachmentStore, capacity: int = HISTORY_SIZE) -> None:
        self.log = logging.getLogger("speaco.history")
        self.attachments = attachments
        self.capacity = max(1, int(capacity))
        self._slots: OrderedDict[int, Message] = OrderedDict()
        self._index: dict[tuple[str, int | float], list[int]] = {}
        self._next_slot = 0

    def __len__(self) -> int:
        return len(self._slots)

    def append(self, message: Message) -> list[Message]:
        """Append ``message`` and return whatever was evicted to make room."""
        slot = self._next_slot
        self._next_slot += 1
        self._slots[slot] = message

        key = message.key
        if key is not None:
            self._index.setdefault(key, []).append(slot)

        evicted: list[Message] = []
        while len(self._slots) > self.capacity:
            evicted.append(self._evict_oldest())
        return evicted

    def _evict_oldest(self) -> Message:
        slot, message = self._slots.popitem(last=False)
        self._unindex(message, slot)
        if message.attachment:
            self.attachments.evict_payload(message.attachment)
        self.log.debug(
            "Evicted message sender=%r id=%r attachment=%r",
            message.sender,
            message.id,
            message.attachment,
        )
        return message

    def _unindex(self, message: Message, slot: int) -> None:
        key = message.key
        if key is None:
            return
        slots = self._index.get(key)
        if not slots:
            return
        try:
            slots.remove(slot)
        except ValueError:
            pass
        if not slots:
            self._index.pop(key, None)

    def find(self, sender: str, message_id: int | float) -> Message | None:
        slots = self._index.get((sender, message_id))
        if not slots:
            return None
        return self._slots.get(slots[0])

    def edit(
        self,
        sender: str,
        message_id: int | float,
        text: str,
        attachment: str | None,
    ) -> Message | None:
        """Rewrite a message in place.

        Returns ``None`` when ``sender`` has no message with that id; that is
        not an error.
        """
        message = self.find(sender, message_id)
        if message is None:
            return None

        message.text = text
        message.attachment = attachment
        message.edited = True
        return message

    def delete(self, sender: str, message_id: int | float) -> int:
        """Remove every message matching (sender, id); returns how many."""
        slots = self._index.pop((sender, message_id), [])
        for slot in slots:
            self._slots.pop(slot, None)
        return len(slots)

    def messages(self) -> list[Message]:
        return list(self._slots.values())

    def snapshot(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._slots.values()]

    def restore(self, raw_messages: list[Any]) -> None:
        self.clear_all()
        for raw in raw_messages:
            if isinstance(raw, dict):
                self.append(Message.from_dict(raw))

    def clear_all(self) -> None:
        self._slots.clear()
        self._index.clear()
        self._next_slot = 0
