from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

import tomlkit

from . import __version__
from .config import ChatRuntimeConfig, apply_config_data, load_toml
from .logging_config import configure_logging
from .paths import default_backup_path, default_config_path, ensure_private_dir
from .service import ChatService


def _default_config_document(backup_path: str) -> tomlkit.TOMLDocument:
    defaults = ChatRuntimeConfig()

    doc = tomlkit.document()
    doc.add(tomlkit.comment("speaco configuration (TOML)"))
    doc.add(tomlkit.comment(""))
    doc.add(tomlkit.comment("This file was created on first run."))
    doc.add(tomlkit.comment("Edit it, then start speaco again."))
    doc.add(tomlkit.nl())

    server = tomlkit.table()
    server.add(tomlkit.comment("Address the WebSocket server listens on."))
    server.add("host", defaults.host)
    server.add("port", defaults.port)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Snapshot written on shutdown and read on startup."))
    server.add(tomlkit.comment("Leave empty to disable persistence."))
    server.add("backup_path", backup_path)
    doc.add("server", server)

    limits = tomlkit.table()
    limits.add(tomlkit.comment("Frames larger than this are refused by the transport (bytes)."))
    limits.add("event_size_limit", defaults.event_size_limit)
    limits.add(tomlkit.comment("0 disables the nickname length check."))
    limits.add("nick_max_chars", defaults.nick_max_chars)
    limits.add(tomlkit.comment("Older messages are evicted, with their attachment payloads."))
    limits.add("history_size", defaults.history_size)
    limits.add("message_max_chars", defaults.message_max_chars)
    limits.add("attachment_max_chars", defaults.attachment_max_chars)
    doc.add("limits", limits)

    logging_table = tomlkit.table()
    logging_table.add(tomlkit.comment("Log level for speaco itself."))
    logging_table.add("level", defaults.log_level)
    logging_table.add(tomlkit.comment("Log level for the websockets library."))
    logging_table.add("websockets_level", defaults.log_websockets_level)
    logging_table.add(tomlkit.comment("Log to stderr (systemd/journald friendly)."))
    logging_table.add("console", defaults.log_console)
    logging_table.add(tomlkit.comment("Optional file path for logs (leave empty to disable)."))
    logging_table.add("file", "")
    logging_table.add("format", defaults.log_format)
    logging_table.add("datefmt", "")
    doc.add("logging", logging_table)

    return doc


def _write_default_config(config_path: str, backup_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(tomlkit.dumps(_default_config_document(backup_path)))


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="speaco", description="Run a speaco chat hub")
    p.add_argument("--version", action="version", version=f"speaco {__version__}")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help="Listen address (default: localhost)")
    p.add_argument("--port", type=int, default=None, help="Listen port (default: 6942)")
    p.add_argument(
        "--backup",
        default=None,
        help="Snapshot file path (empty disables persistence)",
    )

    p.add_argument(
        "--max-event-bytes", type=int, default=None, help="Maximum inbound frame size"
    )
    p.add_argument(
        "--nick-max-chars", type=int, default=None, help="Maximum nickname length"
    )
    p.add_argument(
        "--history-size", type=int, default=None, help="Messages kept in history"
    )
    p.add_argument(
        "--max-message-chars", type=int, default=None, help="Maximum message text length"
    )
    p.add_argument(
        "--max-attachment-chars",
        type=int,
        default=None,
        help="Maximum attachment payload length",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> ChatRuntimeConfig:
    config_path = str(args.config) if args.config else None

    cfg = ChatRuntimeConfig(
        config_path=config_path, backup_path=str(default_backup_path())
    )
    if config_path and os.path.exists(config_path):
        cfg = apply_config_data(cfg, load_toml(config_path))

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.backup is not None:
        cfg = replace(cfg, backup_path=str(args.backup) or None)

    if args.max_event_bytes is not None:
        cfg = replace(cfg, event_size_limit=int(args.max_event_bytes))
    if args.nick_max_chars is not None:
        cfg = replace(cfg, nick_max_chars=int(args.nick_max_chars))
    if args.history_size is not None:
        cfg = replace(cfg, history_size=int(args.history_size))
    if args.max_message_chars is not None:
        cfg = replace(cfg, message_max_chars=int(args.max_message_chars))
    if args.max_attachment_chars is not None:
        cfg = replace(cfg, attachment_max_chars=int(args.max_attachment_chars))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    if config_path and not os.path.exists(config_path):
        _write_default_config(config_path, str(default_backup_path()))
        print(
            "Created default speaco configuration. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run speaco.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = build_config(args)

    configure_logging(cfg)

    svc = ChatService(cfg)
    svc.start()
    svc.run_forever()


if __name__ == "__main__":
    main()
