"""Session state and the normalized message unit emitted toward chat."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from conduit.agent.streaming import StreamingChannel

MessageKind = Literal["message", "error", "system"]

SessionMode = Literal["synchronous", "streaming"]


class NormalizedMessage(BaseModel):
    """One displayable unit of agent output for a chat channel.

    Immutable once built; consumed exactly once by the message router.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    channel_id: str = Field(description="Chat channel the message belongs to")
    content: str = Field(min_length=1, description="Display text")
    kind: MessageKind = Field(default="message", description="Message category")


@dataclass
class Session:
    """An active conversation bound to one chat channel.

    ``channel`` is the owned streaming process wrapper in streaming mode
    and ``None`` in synchronous mode.
    """

    channel_id: str
    session_id: str
    mode: SessionMode
    channel: StreamingChannel | None = None
    last_activity: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def touch(self) -> None:
        """Record activity now."""
        self.last_activity = datetime.now(tz=UTC)
