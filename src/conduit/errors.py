"""Exception taxonomy for session and subprocess failures."""

from __future__ import annotations


class ConduitError(Exception):
    """Base class for user-facing conduit errors."""


class LaunchError(ConduitError):
    """Raised when the agent process cannot be started."""


class ExchangeTimeoutError(ConduitError, TimeoutError):
    """Raised when a synchronous exchange exceeds its time budget."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            f"The agent did not answer within {timeout:g}s and was stopped."
        )


class ParseError(ConduitError):
    """Raised when agent output is not the structured data we expected.

    Always recovered locally (raw-text fallback or discard).
    """


class AlreadyActiveError(ConduitError):
    """Raised when starting a session on a channel that already has one."""

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(
            f"A session is already active in channel '{channel_id}'. "
            "End it first."
        )


class NoActiveSessionError(ConduitError):
    """Raised when a channel has no session to operate on."""

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        super().__init__(f"No active session in channel '{channel_id}'.")


class ModeMismatchError(ConduitError):
    """Raised when an operation does not fit the session's mode."""

    def __init__(self, channel_id: str, mode: str) -> None:
        self.channel_id = channel_id
        self.mode = mode
        super().__init__(
            f"The session in channel '{channel_id}' is in {mode} mode "
            "and cannot take plain messages."
        )


class ProcessExitError(ConduitError):
    """A streaming agent process terminated.

    Not raised; attached to the channel so teardown can report why.
    """

    def __init__(self, channel_id: str, returncode: int | None) -> None:
        self.channel_id = channel_id
        self.returncode = returncode
        super().__init__(
            f"Agent process for channel '{channel_id}' exited "
            f"with code {returncode}."
        )
