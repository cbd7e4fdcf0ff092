"""Main CLI application using Typer."""
import asyncio

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..context import DEFAULT_PROFILE
from ..queue.models import MessageStatus, QueuedMessage
from ..sync.stream import follow_session_events
from ..transport.errors import ProxyError
from ..transport.models import (
    AgentStatus,
    SessionEventsOptions,
    SessionListParams,
    SessionMessage,
    SessionMessageListParams,
)
from .providers import get_config, get_context, get_transport

# Load environment variables
load_dotenv()

# Create Typer app
app = typer.Typer(
    name="agentrelay",
    help="Resilient message delivery and sync for agent sessions",
    no_args_is_help=True,
    add_completion=True,
)

# Console for rich output
console = Console()

STATUS_STYLES = {
    MessageStatus.PENDING: "yellow",
    MessageStatus.SENDING: "cyan",
    MessageStatus.SENT: "green",
    MessageStatus.FAILED: "red",
    MessageStatus.CANCELLED: "dim",
}


def _parse_pairs(values: list[str] | None, option: str) -> dict[str, str] | None:
    """Turn KEY=VALUE options into a dict."""
    if not values:
        return None
    pairs = {}
    for value in values:
        key, sep, item = value.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {value!r}", param_hint=option)
        pairs[key] = item
    return pairs


def _print_error(error: ProxyError) -> None:
    status = f" (HTTP {error.status})" if error.status else ""
    console.print(f"[red]Error {escape(f'[{error.code}]')}{status}: {escape(error.message)}[/red]")


def _print_message(message: SessionMessage) -> None:
    style = "bold green" if message.role == "user" else "bold blue"
    stamp = f" [dim]{message.timestamp}[/dim]" if message.timestamp else ""
    console.print(f"[{style}]{message.role}[/{style}]{stamp}")
    console.print(message.content, markup=False)


def _print_status(status: AgentStatus) -> None:
    style = {"stable": "green", "running": "yellow", "error": "red"}.get(status.status, "white")
    console.print(f"[{style}]agent {status.status}[/{style}]")


@app.command()
def start(
    env: list[str] = typer.Option(
        None,
        "--env",
        "-e",
        help="Environment variable for the agent (KEY=VALUE, repeatable)"
    ),
    tag: list[str] = typer.Option(
        None,
        "--tag",
        "-t",
        help="Session tag (KEY=VALUE, repeatable)"
    ),
    count: int = typer.Option(
        1,
        "--count",
        "-n",
        min=1,
        help="Number of sessions to start"
    )
):
    """Start one or more sessions."""
    environment = _parse_pairs(env, "--env")
    tags = _parse_pairs(tag, "--tag")

    async def _start():
        async with get_transport(console) as transport:
            try:
                if count > 1:
                    sessions = await transport.start_batch(count, environment, tags=tags)
                else:
                    sessions = [await transport.start(environment, tags=tags)]
            except ValueError as e:
                console.print(f"[red]Error: {escape(str(e))}[/red]")
                raise typer.Exit(code=1)
            except ProxyError as e:
                _print_error(e)
                raise typer.Exit(code=1)

            for session in sessions:
                console.print(f"[green]Started session {session.session_id}[/green] [dim]({session.status})[/dim]")

    asyncio.run(_start())


@app.command()
def sessions(
    status: str = typer.Option(
        None,
        "--status",
        "-s",
        help="Only list sessions in this state"
    ),
    page: int = typer.Option(
        1,
        "--page",
        "-p",
        min=1,
        help="Page number"
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-l",
        min=1,
        help="Sessions per page"
    )
):
    """List sessions."""
    async def _sessions():
        async with get_transport(console) as transport:
            try:
                response = await transport.search(
                    SessionListParams(page=page, limit=limit, status=status)
                )
            except ProxyError as e:
                _print_error(e)
                raise typer.Exit(code=1)

            if not response.sessions:
                console.print("[yellow]No sessions found[/yellow]")
                return

            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("Session", style="cyan")
            table.add_column("Status", style="yellow", width=10)
            table.add_column("Started", style="dim")
            table.add_column("Description")

            for session in response.sessions:
                table.add_row(
                    session.session_id,
                    session.status,
                    session.started_at or "",
                    session.description or "",
                )

            console.print(table)
            console.print(f"[dim]Page {response.page}, {response.total} sessions in total[/dim]")

    asyncio.run(_sessions())


@app.command()
def delete(
    session_ids: list[str] = typer.Argument(..., help="Sessions to delete"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt"
    )
):
    """Delete one or more sessions."""
    if not yes:
        confirm = typer.confirm(f"Delete {len(session_ids)} session(s)?")
        if not confirm:
            console.print("[dim]Aborted.[/dim]")
            return

    async def _delete():
        async with get_transport(console) as transport:
            try:
                await transport.delete_batch(session_ids)
            except ProxyError as e:
                _print_error(e)
                raise typer.Exit(code=1)
            console.print(f"[green]Deleted {len(session_ids)} session(s)[/green]")

    asyncio.run(_delete())


@app.command()
def status(session_id: str = typer.Argument(..., help="Session to inspect")):
    """Show the agent status of a session."""
    async def _status():
        async with get_transport(console) as transport:
            try:
                agent = await transport.get_session_status(session_id)
            except ProxyError as e:
                _print_error(e)
                raise typer.Exit(code=1)

            table = Table(show_header=False, box=None)
            table.add_column("Field", style="bold cyan", width=15)
            table.add_column("Value")
            table.add_row("Status", agent.status)
            table.add_row("Last Activity", agent.last_activity or "-")
            table.add_row("Current Task", agent.current_task or "-")
            console.print(table)

    asyncio.run(_status())


@app.command()
def messages(
    session_id: str = typer.Argument(..., help="Session to read"),
    limit: int = typer.Option(
        None,
        "--limit",
        "-l",
        min=1,
        help="Maximum number of messages"
    )
):
    """Print the messages of a session."""
    async def _messages():
        async with get_transport(console) as transport:
            try:
                response = await transport.get_session_messages(
                    session_id, SessionMessageListParams(limit=limit)
                )
            except ProxyError as e:
                _print_error(e)
                raise typer.Exit(code=1)

            if not response.messages:
                console.print("[yellow]No messages yet[/yellow]")
                return
            for message in response.messages:
                _print_message(message)

    asyncio.run(_messages())


@app.command()
def send(
    session_id: str = typer.Argument(..., help="Target session"),
    content: str = typer.Argument(..., help="Message text"),
    retries: int = typer.Option(
        3,
        "--retries",
        "-r",
        min=0,
        help="Automatic retries before the message is marked failed"
    ),
    timeout: float = typer.Option(
        None,
        "--timeout",
        help="Give up waiting after this many seconds"
    ),
    profile: str = typer.Option(
        DEFAULT_PROFILE,
        "--profile",
        help="Profile used for the recent-message history"
    )
):
    """Send a message through the delivery queue and wait for the outcome."""
    async def _send():
        context = await get_context(console)
        try:
            def show(message: QueuedMessage) -> None:
                style = STATUS_STYLES[message.status]
                retry = f" retry {message.retry_count}/{message.max_retries}" if message.retry_count else ""
                console.print(f"[{style}]{message.status.value}[/{style}]{retry}")

            context.queue.on_message_update(show)
            message_id = await context.send(session_id, content, profile_id=profile, max_retries=retries)

            try:
                final = await context.queue.wait_for(message_id, timeout)
            except asyncio.TimeoutError:
                context.queue.cancel_message(message_id)
                console.print(f"[red]Gave up after {timeout:.1f}s[/red]")
                raise typer.Exit(code=1)

            if final.status != MessageStatus.SENT:
                console.print(f"[red]Message {final.status.value}: {escape(final.error or '')}[/red]")
                raise typer.Exit(code=1)
            console.print(f"[green]Delivered {message_id}[/green]")
        finally:
            await context.destroy()

    asyncio.run(_send())


@app.command()
def watch(
    session_id: str = typer.Argument(..., help="Session to follow"),
    reconnect: bool = typer.Option(
        True,
        "--reconnect/--no-reconnect",
        help="Reopen the stream after it fails"
    ),
    interval: float = typer.Option(
        5.0,
        "--interval",
        "-i",
        min=0.0,
        help="Seconds to wait before reconnecting"
    ),
    attempts: int = typer.Option(
        None,
        "--max-attempts",
        min=0,
        help="Stop after this many failed reconnects"
    )
):
    """Follow a session's event stream."""
    options = SessionEventsOptions(
        reconnect=reconnect,
        reconnect_interval=interval,
        max_reconnect_attempts=attempts,
    )

    async def _watch():
        async with get_transport(console) as transport:
            console.print(f"[dim]Following {session_id} (Ctrl+C to stop)[/dim]")
            error = await follow_session_events(
                transport,
                session_id,
                _print_message,
                _print_status,
                _print_error,
                options,
            )
            if error is not None:
                raise typer.Exit(code=1)

    try:
        asyncio.run(_watch())
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


@app.command()
def recent(
    profile: str = typer.Option(
        DEFAULT_PROFILE,
        "--profile",
        help="Profile to show"
    ),
    initial: bool = typer.Option(
        False,
        "--initial",
        help="Show the initial-message cache instead"
    ),
    clear: bool = typer.Option(
        False,
        "--clear",
        help="Forget the profile's messages"
    )
):
    """Show recently sent messages."""
    async def _recent():
        context = await get_context(console)
        try:
            store = context.initial_messages if initial else context.recent_messages
            if clear:
                await store.clear(profile)
                console.print(f"[green]Cleared history for {profile}[/green]")
                return

            entries = await store.get_recent_messages(profile)
            if not entries:
                console.print("[yellow]No recent messages[/yellow]")
                return
            for i, entry in enumerate(entries, 1):
                console.print(Panel(entry.content, title=f"{i}", border_style="dim"))
        finally:
            await context.destroy()

    asyncio.run(_recent())


@app.command()
def health():
    """Check configuration and service health."""
    async def _health():
        config = get_config(console)
        console.print(f"[dim]Service: {config.base_url}[/dim]")

        if config.api_key:
            console.print("[green]+[/green] API key: SET")
        else:
            console.print("[yellow]![/yellow] API key: NOT SET")

        async with get_transport(console) as transport:
            if await transport.health_check():
                console.print("[green]+[/green] Service: OK")
            else:
                console.print("[red]x[/red] Service: UNREACHABLE")
                raise typer.Exit(code=1)

    asyncio.run(_health())


@app.command()
def chat(
    session_id: str = typer.Argument(..., help="Session to chat with"),
    interval: float = typer.Option(
        2.0,
        "--interval",
        "-i",
        min=0.1,
        help="Seconds between refreshes while the terminal is focused"
    ),
    profile: str = typer.Option(
        DEFAULT_PROFILE,
        "--profile",
        help="Profile used for the recent-message history"
    )
):
    """Interactive chat with a session."""
    from ..ui import run_chat
    from .providers import get_runtime_options

    config = get_config(console)
    pacer, backend, path = get_runtime_options(console)
    run_chat(
        session_id,
        interval=interval,
        profile_id=profile,
        config=config,
        history_backend=backend,
        history_path=path,
        pacer=pacer,
    )


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
