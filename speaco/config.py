from __future__ import annotations

from dataclasses import asdict, dataclass, replace

from .constants import (
    ATTACHMENT_MAX_CHARS,
    EVENT_SIZE_LIMIT,
    HISTORY_SIZE,
    MESSAGE_MAX_CHARS,
    NICK_MAX_CHARS,
)


@dataclass(frozen=True)
class ChatRuntimeConfig:
    config_path: str | None = None
    backup_path: str | None = None
    host: str = "localhost"
    port: int = 6942
    event_size_limit: int = EVENT_SIZE_LIMIT
    nick_max_chars: int = NICK_MAX_CHARS
    history_size: int = HISTORY_SIZE
    message_max_chars: int = MESSAGE_MAX_CHARS
    attachment_max_chars: int = ATTACHMENT_MAX_CHARS
    log_level: str = "INFO"
    log_websockets_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "websockets_level": "log_websockets_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_INT_KEYS = (
    "port",
    "event_size_limit",
    "nick_max_chars",
    "history_size",
    "message_max_chars",
    "attachment_max_chars",
)


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: ChatRuntimeConfig, data: dict) -> ChatRuntimeConfig:
    """Overlay values from a parsed TOML document onto ``base``.

    ``[server]`` and ``[limits]`` keys map one-to-one onto config fields;
    ``[logging]`` keys are prefixed with ``log_``. Unknown keys are ignored.
    """
    if not isinstance(data, dict):
        return base

    for table in ("server", "limits"):
        section = data.get(table)
        if isinstance(section, dict):
            data = {**data, **section}

    log_table = data.get("logging")
    if isinstance(log_table, dict):
        mapped = {_LOGGING_KEYS[k]: v for k, v in log_table.items() if k in _LOGGING_KEYS}
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the file came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _INT_KEYS:
        if key in updates:
            updates[key] = int(updates[key])
    if "log_console" in updates:
        updates["log_console"] = bool(updates["log_console"])

    for key in ("backup_path", "log_file", "log_datefmt"):
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(base, **updates) if updates else base
