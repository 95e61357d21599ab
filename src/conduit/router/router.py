"""Message router protocol and the terminal implementation."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import click

from conduit.constants import MESSAGE_LIMIT
from conduit.router.chunking import split_message
from conduit.session.models import NormalizedMessage

logger = logging.getLogger(__name__)


@runtime_checkable
class MessageRouter(Protocol):
    """Consumer of session manager events.

    ``deliver`` receives every agent message (``claude-message``);
    ``session_ended`` fires when a streaming process exits
    (``session-ended``).
    """

    async def deliver(self, message: NormalizedMessage) -> None:
        """Hand one message to the chat surface."""
        ...

    async def session_ended(self, channel_id: str) -> None:
        """Notify that the channel's streaming session is gone."""
        ...


class ConsoleRouter:
    """Prints agent output to the terminal, chunked like a chat platform."""

    def __init__(self, limit: int = MESSAGE_LIMIT, label: str = "agent") -> None:
        self._limit = limit
        self._label = label

    async def deliver(self, message: NormalizedMessage) -> None:
        """Echo *message* in ``[label] text`` chunks."""
        for chunk in split_message(message.content, self._limit):
            prefix = f"[{self._label}] "
            if message.kind == "error":
                click.echo(click.style(prefix + chunk, fg="red"), err=True)
            elif message.kind == "system":
                click.echo(click.style(prefix + chunk, dim=True))
            else:
                click.echo(click.style(prefix, fg="cyan") + chunk)

    async def session_ended(self, channel_id: str) -> None:
        """Tell the user the channel's session is over."""
        logger.info("Session ended for channel %s", channel_id)
        click.echo(click.style(f"  Session ended in #{channel_id}", fg="yellow"))
