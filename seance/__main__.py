"""Entry point: python -m seance."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import signal
import sys
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from seance.backend.base import SessionBackend
from seance.clock import now
from seance.collector import SessionCollector
from seance.config import SeanceConfig, create_backend, load_config
from seance.errors import SeanceError
from seance.log_context import set_log_context
from seance.logging_config import setup_logging

logger = logging.getLogger(__name__)

_console = Console()

DEFAULT_CONFIG_PATH = Path("~/.seance/config.json")


def _config_path(arg: str | None) -> Path:
    raw = arg or os.environ.get("SEANCE_CONFIG") or str(DEFAULT_CONFIG_PATH)
    return Path(raw).expanduser()


def _format_age(seconds: int) -> str:
    minutes, secs = divmod(max(seconds, 0), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


async def _cmd_sessions(backend: SessionBackend, config: SeanceConfig) -> int:
    session_ids = await backend.list_sessions()
    timestamp = now()
    lifetime = config.collector.lifetime_seconds

    table = Table(title=f"{len(session_ids)} session(s)")
    table.add_column("Session", style="cyan")
    table.add_column("Created (UTC)")
    table.add_column("Age", justify="right")
    table.add_column("Stale", justify="center")
    for session_id in sorted(session_ids):
        created = await backend.session_age(session_id)
        if created is None:
            continue
        age = timestamp - created
        table.add_row(
            session_id,
            datetime.fromtimestamp(created, UTC).strftime("%Y-%m-%d %H:%M:%S"),
            _format_age(age),
            "[red]yes[/red]" if age >= lifetime else "no",
        )
    _console.print(table)
    return 0


async def _cmd_gc(backend: SessionBackend, config: SeanceConfig, *, once: bool) -> int:
    cfg = config.collector
    collector = SessionCollector(
        backend,
        period=cfg.period_seconds,
        lifetime=cfg.lifetime_seconds,
    )
    if once:
        evicted = await collector.collect()
        _console.print(f"Evicted [bold]{evicted}[/bold] session(s)")
        return 0
    if not cfg.enabled:
        _console.print("[yellow]Collector disabled in config[/yellow]")
        return 0

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    await collector.start()
    _console.print(
        f"Collector running (period {cfg.period_seconds:g}s, "
        f"lifetime {cfg.lifetime_seconds:g}s). Press Ctrl+C to stop."
    )
    try:
        await stop.wait()
    finally:
        await collector.stop()
    return 0


def _cmd_config(path: Path, *, write: bool) -> int:
    config = load_config(path, persist_defaults=write)
    data = config.model_dump(mode="json")
    if write and not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        _console.print(f"Default config created at {path}")
    _console.print_json(json.dumps(data))
    return 0


async def _run(args: argparse.Namespace, config: SeanceConfig) -> int:
    set_log_context(operation="cli")
    backend = await create_backend(config)
    async with backend:
        if args.command == "sessions":
            return await _cmd_sessions(backend, config)
        return await _cmd_gc(backend, config, once=args.once)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="seance", description="Session store maintenance")
    parser.add_argument("--config", help="path to config.json (default: ~/.seance/config.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sessions", help="list sessions and their age")

    gc = sub.add_parser("gc", help="evict sessions older than the configured lifetime")
    gc.add_argument("--once", action="store_true", help="run a single sweep and exit")

    cfg = sub.add_parser("config", help="show the effective configuration")
    cfg.add_argument("--write", action="store_true", help="write missing defaults to the file")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    path = _config_path(args.config)
    try:
        if args.command == "config":
            return _cmd_config(path, write=args.write)
        config = load_config(path)
        setup_logging(config.log_level, verbose=args.verbose)
        return asyncio.run(_run(args, config))
    except SeanceError as exc:
        logger.debug("Command failed", exc_info=True)
        _console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}", soft_wrap=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
