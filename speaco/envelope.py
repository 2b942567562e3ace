from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .constants import K_TYPE, EventType
from .errors import MalformedEvent, MissingType, UnknownEventType


def make_envelope(event_type: str, body: Mapping[str, Any] | None = None) -> dict:
    if body is None:
        body = {}
    if not isinstance(body, Mapping):
        raise TypeError("event must be an object")

    env: dict[str, Any] = dict(body)
    env[K_TYPE] = str(event_type)
    return env


def parse_event(env: Any) -> EventType:
    """Check envelope structure and return its event type.

    The remaining keys are left for the per-event handler to validate.
    """
    if not isinstance(env, dict):
        raise MalformedEvent("client-sent event is not an object")

    if K_TYPE not in env:
        raise MissingType()

    t = env[K_TYPE]
    if not isinstance(t, str):
        raise UnknownEventType()
    try:
        return EventType(t)
    except ValueError:
        raise UnknownEventType() from None
