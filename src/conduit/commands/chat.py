"""conduit chat — a terminal stand-in for a chat channel."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import select
import signal
import sys
import threading
from pathlib import Path

import click

from conduit.config.models import ConduitConfig
from conduit.config.parser import ConfigError, load_config
from conduit.errors import ConduitError
from conduit.router.router import ConsoleRouter
from conduit.session.manager import SessionManager
from conduit.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

_HELP_TEXT = """\
  /start               start a new session in this channel
  /resume <session-id> resume an existing agent session (streaming)
  /stop                end the session in this channel
  /session             show the session in this channel
  /sessions            list all live sessions
  /quit                leave (ends all sessions)
  Anything else is sent to the agent while a session is active."""


# ------------------------------------------------------------------ #
# Click command
# ------------------------------------------------------------------ #


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "--cwd",
    "working_dir",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Directory the agent runs in (overrides agent.working_dir).",
)
@click.option("--channel", "channel_id", default=None, help="Channel id to chat in.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option("-q", "--quiet", is_flag=True, help="Only log warnings and errors.")
def chat(
    config_file: str | None,
    working_dir: str | None,
    channel_id: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Chat with the agent from the terminal as if it were a chat channel."""
    _configure_logging(verbose, quiet)

    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    asyncio.run(_run_chat(config, channel_id or config.chat.channel, working_dir))


def _configure_logging(verbose: bool, quiet: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ------------------------------------------------------------------ #
# Session runner
# ------------------------------------------------------------------ #


async def _run_chat(
    config: ConduitConfig,
    channel_id: str,
    working_dir: str | None = None,
) -> None:
    """Wire up the registry, router, and manager, then run the REPL."""
    registry = SessionRegistry()
    router = ConsoleRouter(limit=config.chat.message_limit)
    manager = SessionManager.from_config(config, registry, router, working_dir)

    click.echo(f"\n  Conduit -- #{channel_id}")
    click.echo(f"  Agent:  {config.agent.command}")
    if manager.working_dir is not None:
        click.echo(f"  Dir:    {manager.working_dir}")
    click.echo("  Type /help for commands.")
    click.echo()

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, shutdown_event.set)

    try:
        await _repl_loop(manager, channel_id, shutdown_event)
    finally:
        await manager.shutdown()
        click.echo("Bye.")


async def _repl_loop(
    manager: SessionManager,
    channel_id: str,
    shutdown_event: asyncio.Event,
) -> None:
    """Read user input in a loop and dispatch commands or messages."""
    # Bridge async shutdown_event → thread-safe cancel event so _read_input
    # (running in a thread) can be interrupted when SIGTERM arrives.
    thread_cancel = threading.Event()

    async def _bridge_shutdown() -> None:
        await shutdown_event.wait()
        thread_cancel.set()

    bridge_task = asyncio.create_task(_bridge_shutdown())

    try:
        while not shutdown_event.is_set():
            try:
                line = await asyncio.get_running_loop().run_in_executor(
                    None,
                    functools.partial(_read_input, thread_cancel),
                )
            except EOFError:
                break

            line = line.strip()
            if not line:
                continue

            # Run the line as a task so a signal can cancel a long exchange.
            line_task = asyncio.create_task(_handle_line(line, manager, channel_id))
            stop_task = asyncio.create_task(shutdown_event.wait())
            try:
                done, _ = await asyncio.wait(
                    {line_task, stop_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
            except asyncio.CancelledError:
                line_task.cancel()
                raise
            finally:
                stop_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await stop_task

            if line_task not in done:
                click.echo("\nInterrupted.")
                line_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await line_task
                break

            if line_task.result():
                break
    finally:
        bridge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await bridge_task


def _read_input(cancel: threading.Event | None = None) -> str:
    r"""Blocking stdin reader for use with ``run_in_executor``.

    Polls stdin with a 0.5 s timeout so *cancel* can interrupt it, raising
    ``EOFError``.  Lines ending with ``\\`` continue on the next line.
    """
    lines: list[str] = []
    prompt = "> "

    while True:
        sys.stdout.write(prompt)
        sys.stdout.flush()

        while cancel is None or not cancel.is_set():
            ready, _, _ = select.select([sys.stdin], [], [], 0.5)
            if ready:
                break
            if cancel is None:
                break

        if cancel is not None and cancel.is_set():
            raise EOFError

        line = sys.stdin.readline()
        if not line:
            raise EOFError
        line = line.rstrip("\n")

        if line.endswith("\\"):
            lines.append(line[:-1])
            prompt = "... "
        else:
            lines.append(line)
            return "\n".join(lines)


# ------------------------------------------------------------------ #
# Dispatch
# ------------------------------------------------------------------ #


async def _handle_line(line: str, manager: SessionManager, channel_id: str) -> bool:
    """Handle one input line. Returns ``True`` if the REPL should exit."""
    session = manager.get_session(channel_id)

    if line.startswith("/") and not (session and manager.is_agent_command(line)):
        return await _handle_command(line, manager, channel_id)

    if session is None:
        click.echo("No active session. Use /start or /resume <session-id>.")
        return False

    try:
        await manager.send_message(channel_id, line)
    except ConduitError as exc:
        click.echo(f"Error: {exc}", err=True)
    return False


async def _handle_command(line: str, manager: SessionManager, channel_id: str) -> bool:
    """Process a slash command. Returns ``True`` if the REPL should exit."""
    parts = line.split()
    cmd = parts[0].lower()

    if cmd in ("/quit", "/exit"):
        return True

    if cmd == "/help":
        click.echo(_HELP_TEXT)
        return False

    if cmd == "/start":
        if manager.get_session(channel_id) is not None:
            click.echo(
                "A session is already active in this channel. "
                "Use /stop to end it first."
            )
            return False
        click.echo("Starting session...")
        try:
            session_id = await manager.start_session(channel_id)
        except ConduitError as exc:
            click.echo(f"Failed to start session: {exc}", err=True)
            return False
        click.echo(click.style(f"  Session started: {session_id}", fg="green"))
        return False

    if cmd == "/resume":
        if len(parts) < 2:
            click.echo("Usage: /resume <session-id>")
            return False
        if manager.get_session(channel_id) is not None:
            click.echo(
                "A session is already active in this channel. "
                "Use /stop to end it first."
            )
            return False
        try:
            await manager.resume_session(channel_id, parts[1])
        except ConduitError as exc:
            click.echo(f"Failed to resume session: {exc}", err=True)
            return False
        click.echo(click.style(f"  Session resumed: {parts[1]}", fg="green"))
        return False

    if cmd == "/stop":
        session = manager.get_session(channel_id)
        if session is None:
            click.echo("No active session in this channel.")
            return False
        await manager.end_session(channel_id)
        click.echo(click.style(f"  Session ended: {session.session_id}", fg="red"))
        return False

    if cmd == "/session":
        session = manager.get_session(channel_id)
        if session is None:
            click.echo("No active session in this channel.")
        else:
            click.echo(
                f"  {session.session_id} ({session.mode}, last activity "
                f"{session.last_activity:%H:%M:%S})"
            )
        return False

    if cmd == "/sessions":
        sessions = manager.all_sessions()
        if not sessions:
            click.echo("No live sessions.")
        for cid, session in sessions.items():
            click.echo(f"  #{cid}: {session.session_id} ({session.mode})")
        return False

    click.echo(f"Unknown command: {cmd}")
    return False
