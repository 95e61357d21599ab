"""Pydantic v2 models for conduit.yaml configuration."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from conduit.constants import (
    DEFAULT_TIMEOUT,
    GREETING_PROMPT,
    MESSAGE_LIMIT,
    NODE_HEAP_LIMIT_MB,
    STRIPPED_ENV_KEYS,
)

_PREFIX_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


class AgentConfig(BaseModel):
    """How to invoke the external agent CLI."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(
        default="claude",
        description="Agent CLI executable (looked up on PATH)",
    )
    args: list[str] = Field(
        default_factory=list,
        description="Extra arguments appended to every invocation",
    )
    timeout: float = Field(
        default=DEFAULT_TIMEOUT,
        gt=0,
        description="Seconds allowed for one synchronous exchange",
    )
    greeting: str = Field(
        default=GREETING_PROMPT,
        min_length=1,
        description="Prompt sent when a session starts",
    )
    working_dir: str | None = Field(
        default=None,
        description="Directory the agent runs in (relative to the config file)",
    )
    stripped_env: list[str] = Field(
        default_factory=lambda: list(STRIPPED_ENV_KEYS),
        description="Environment variables removed from the agent's environment",
    )
    node_heap_limit_mb: int | None = Field(
        default=NODE_HEAP_LIMIT_MB,
        ge=64,
        description="V8 heap cap for Node.js CLIs (null to disable)",
    )

    @field_validator("command")
    @classmethod
    def _command_not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "Agent command must not be empty"
            raise ValueError(msg)
        return value.strip()


class StreamingConfig(BaseModel):
    """Tuning for resumed, long-lived agent processes."""

    model_config = ConfigDict(extra="forbid")

    terminate_grace: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between SIGTERM and SIGKILL on session end",
    )
    kill_grace: float = Field(
        default=3.0,
        gt=0,
        description="Seconds to wait after SIGKILL",
    )
    read_chunk_bytes: int = Field(
        default=65_536,
        ge=1,
        description="Bytes requested per pipe read",
    )
    max_line_bytes: int = Field(
        default=1_048_576,
        ge=1,
        description="Longest accepted JSONL line",
    )


class ChatConfig(BaseModel):
    """Settings for the chat surface side."""

    model_config = ConfigDict(extra="forbid")

    channel: str = Field(
        default="local",
        min_length=1,
        description="Channel id used by the local chat REPL",
    )
    message_limit: int = Field(
        default=MESSAGE_LIMIT,
        ge=1,
        description="Maximum characters per outbound chat message",
    )
    session_prefix: str = Field(
        default="chat",
        description="Prefix of locally generated session ids",
    )

    @field_validator("session_prefix")
    @classmethod
    def _safe_prefix(cls, value: str) -> str:
        if not _PREFIX_RE.match(value):
            msg = (
                f"Invalid session prefix {value!r}: use only letters, digits, "
                "hyphens, and underscores"
            )
            raise ValueError(msg)
        return value


class ConduitConfig(BaseModel):
    """Top-level conduit.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    agent: AgentConfig = Field(
        default_factory=AgentConfig,
        description="Agent CLI invocation",
    )
    streaming: StreamingConfig = Field(
        default_factory=StreamingConfig,
        description="Streaming session settings",
    )
    chat: ChatConfig = Field(
        default_factory=ChatConfig,
        description="Chat surface settings",
    )
