"""Provider factory functions for CLI.

Centralizes creation of configuration, transport, pacer and context
instances from environment variables. Hides configuration details from
command implementations.
"""

import math
import os
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from ..config import ClientConfig, load_config
from ..context import RelayContext
from ..log import configure_logging
from ..queue.pacer import InlinePacer, MessagePacer, ThreadPacer
from ..transport.http import HttpSessionTransport

# Default console for output
_console = Console()


def get_config(console: Console | None = None) -> ClientConfig:
    """Load client configuration, exiting on invalid settings.

    Also installs logging according to AGENTRELAY_DEBUG.

    Raises:
        SystemExit: If the environment holds invalid values
    """
    con = console or _console
    try:
        config = load_config()
    except (ValidationError, ValueError) as e:
        con.print(f"[red]Error: invalid configuration: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    configure_logging(config.debug)
    return config


def get_transport(console: Console | None = None) -> HttpSessionTransport:
    """Create the HTTP transport from environment variables."""
    return HttpSessionTransport(get_config(console))


PACER_KINDS = ("thread", "inline")
HISTORY_BACKENDS = ("sqlite", "memory")


def get_pacer() -> MessagePacer:
    """Create the message pacer from environment variables.

    Environment variables:
        AGENTRELAY_PACER: "thread" or "inline" (default: thread)
        AGENTRELAY_PACE: Seconds between messages for the thread pacer (default: 1.0)

    Raises:
        ValueError: If either variable holds an unsupported value
    """
    kind = os.getenv("AGENTRELAY_PACER", "thread").strip().lower()
    if kind not in PACER_KINDS:
        raise ValueError(
            f"AGENTRELAY_PACER must be one of {', '.join(PACER_KINDS)}, got {kind!r}"
        )
    if kind == "inline":
        return InlinePacer()

    raw_pace = os.getenv("AGENTRELAY_PACE", "1.0")
    try:
        pace = float(raw_pace)
    except ValueError:
        raise ValueError(f"AGENTRELAY_PACE must be a number, got {raw_pace!r}") from None
    if not math.isfinite(pace) or pace < 0:
        raise ValueError(f"AGENTRELAY_PACE must be a finite number >= 0, got {raw_pace!r}")
    return ThreadPacer(pace=pace)


def get_history_options() -> tuple[str, Path | None]:
    """Read the recent-message cache backend.

    Environment variables:
        AGENTRELAY_HISTORY_BACKEND: "memory" or "sqlite" (default: sqlite)
        AGENTRELAY_HISTORY_PATH: Database file (default: ~/.agentrelay/history.db)

    Raises:
        ValueError: If the backend is not supported
    """
    backend = os.getenv("AGENTRELAY_HISTORY_BACKEND", "sqlite").strip().lower()
    if backend not in HISTORY_BACKENDS:
        raise ValueError(
            f"AGENTRELAY_HISTORY_BACKEND must be one of {', '.join(HISTORY_BACKENDS)}, got {backend!r}"
        )
    if backend != "sqlite":
        return backend, None
    path = os.getenv("AGENTRELAY_HISTORY_PATH")
    return backend, Path(path) if path else Path.home() / ".agentrelay" / "history.db"


def get_runtime_options(console: Console | None = None) -> tuple[MessagePacer, str, Path | None]:
    """Read the pacer and history settings, exiting on invalid values.

    Returns:
        Tuple of (pacer, history backend, history path)

    Raises:
        SystemExit: If the environment holds invalid values
    """
    con = console or _console
    try:
        backend, path = get_history_options()
        pacer = get_pacer()
    except ValueError as e:
        con.print(f"[red]Error: invalid configuration: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    return pacer, backend, path


async def get_context(console: Console | None = None) -> RelayContext:
    """Create a fully wired context from environment variables."""
    config = get_config(console)
    pacer, backend, path = get_runtime_options(console)
    return await RelayContext.create(
        config,
        pacer=pacer,
        history_backend=backend,
        history_path=path,
    )
