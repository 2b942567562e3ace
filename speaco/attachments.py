"""Attachment storage for the speaco hub."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from .constants import ATTACHMENT_ID_GROUPS, ATTACHMENT_MAX_CHARS
from .errors import ValidationError


@dataclass
class Attachment:
    id: str
    name: str | None
    data: str | None

    @property
    def evicted(self) -> bool:
        return self.data is None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "data": self.data}


def new_attachment_id() -> str:
    return "".join(os.urandom(2).hex() for _ in range(ATTACHMENT_ID_GROUPS))


class AttachmentStore:
    """
    Keeps uploaded attachments by random id.

    Entries are never removed. When the history message that referenced an
    attachment is evicted, only its payload is dropped and the id/name stay
    resolvable as a tombstone.

    Must be used with the hub state lock held.
    """

    def __init__(self, max_chars: int = ATTACHMENT_MAX_CHARS) -> None:
        self.log = logging.getLogger("speaco.attachments")
        self.max_chars = int(max_chars)
        self._entries: dict[str, Attachment] = {}

    def __contains__(self, attachment_id: object) -> bool:
        return attachment_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, name: str | None, data: Any, *, owner: str | None = None) -> str:
        """Store a payload and return its new id. Nothing is broadcast."""
        if not isinstance(data, str):
            raise ValidationError("client-sent attachment data isn't a string")
        if len(data) > self.max_chars:
            raise ValidationError("client-sent attachment data is too long")

        attachment_id = self._generate_id()
        self._entries[attachment_id] = Attachment(id=attachment_id, name=name, data=data)

        self.log.debug(
            "Attachment added id=%s owner=%r name=%r chars=%s",
            attachment_id,
            owner,
            name,
            len(data),
        )
        return attachment_id

    def fetch(self, attachment_id: str) -> Attachment | None:
        return self._entries.get(attachment_id)

    def evict_payload(self, attachment_id: str) -> None:
        att = self._entries.get(attachment_id)
        if att is None or att.evicted:
            return
        att.data = None
        self.log.debug("Attachment payload evicted id=%s", attachment_id)

    def _generate_id(self) -> str:
        # Collisions are practically impossible, but ids must stay unique.
        while True:
            attachment_id = new_attachment_id()
            if attachment_id not in self._entries:
                return attachment_id

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {k: v.to_dict() for k, v in self._entries.items()}

    def restore(self, entries: dict[str, Any]) -> None:
        self._entries.clear()
        for attachment_id, raw in entries.items():
            if not isinstance(attachment_id, str) or not isinstance(raw, dict):
                continue
            name = raw.get("name")
            data = raw.get("data")
            self._entries[attachment_id] = Attachment(
                id=attachment_id,
                name=name if isinstance(name, str) else None,
                data=data if isinstance(data, str) else None,
            )
