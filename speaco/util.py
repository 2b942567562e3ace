from __future__ import annotations

import math
import os
from datetime import datetime, timezone

from .errors import InvalidNickname


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def now_iso() -> str:
    """UTC timestamp like ``2024-05-01T12:00:00.000Z``."""
    ts = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return ts.replace("+00:00", "Z")


def is_number(value) -> bool:
    # bool is an int subclass but never a valid message id
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    # 1e400 decodes to inf
    return isinstance(value, float) and math.isfinite(value)


def fmt_channel_id(channel) -> str:
    cid = getattr(channel, "id", None)
    if cid is None:
        return "-"
    s = str(cid).replace("-", "")
    return s[:12]


def check_nick(value, max_chars: int) -> str:
    """Return ``value`` if it is usable as a nickname, else raise.

    ``max_chars`` of 0 disables the length check.
    """
    if not isinstance(value, str) or not value or "\n" in value:
        raise InvalidNickname()
    if max_chars > 0 and len(value) > max_chars:
        raise InvalidNickname("this nickname is too long")
    return value
