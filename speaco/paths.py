from __future__ import annotations

import os
from pathlib import Path


def default_speaco_dir() -> Path:
    override = os.environ.get("SPEACO_HOME")
    if override:
        return Path(override)
    return Path.home() / ".speaco"


def default_config_path() -> Path:
    return default_speaco_dir() / "speaco.toml"


def default_backup_path() -> Path:
    return default_speaco_dir() / "backup.cbor"


def ensure_private_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    try:
        # Best-effort tightening; may fail on some filesystems.
        os.chmod(path, 0o700)
    except Exception:
        pass
