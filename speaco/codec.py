from __future__ import annotations

import json

from .errors import MalformedEvent


def _reject_constant(name: str):
    # NaN, Infinity and -Infinity are not JSON.
    raise MalformedEvent()


def encode(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, allow_nan=False, separators=(",", ":"))


def decode(data: str | bytes):
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEvent() from e
    try:
        return json.loads(data, parse_constant=_reject_constant)
    except ValueError as e:
        raise MalformedEvent() from e
