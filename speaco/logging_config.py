from __future__ import annotations

import logging
from pathlib import Path

from .config import ChatRuntimeConfig
from .util import expand_path


def _level(value: str | None, default: int) -> int:
    # Unknown names fall back to the default rather than failing startup.
    name = (value or "").strip().upper()
    return logging.getLevelNamesMapping().get(name, default)


def configure_logging(cfg: ChatRuntimeConfig) -> None:
    """Install speaco's handlers on the root logger.

    ``cfg`` already carries any command-line overrides. Existing root handlers
    are replaced, so calling this again reconfigures rather than duplicates.
    """
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())
    if cfg.log_file:
        path = Path(expand_path(cfg.log_file))
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
        path.chmod(0o600)

    formatter = logging.Formatter(fmt=cfg.log_format or None, datefmt=cfg.log_datefmt)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(_level(cfg.log_level, logging.INFO))

    logging.getLogger("websockets").setLevel(
        _level(cfg.log_websockets_level, logging.WARNING)
    )
    logging.captureWarnings(True)
