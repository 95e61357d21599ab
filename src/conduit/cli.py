"""Root CLI group and version flag."""

import signal

import click

# Ensure SIGPIPE doesn't silently kill the process (e.g. when stdout
# pipe closes while click.echo is writing).
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)

from conduit import __version__
from conduit.commands.chat import chat
from conduit.commands.init import init


@click.group()
@click.version_option(version=__version__, prog_name="conduit")
def cli() -> None:
    """Conduit — bridge chat channels to a command-line agent."""


cli.add_command(init)
cli.add_command(chat)
