"""Shared constants for the conduit runtime."""

from __future__ import annotations

#: Prompt sent on ``start_session`` so the agent introduces itself.
GREETING_PROMPT = (
    "You are now connected to a chat channel. I'll forward messages from "
    "chat users to you. Please respond naturally and helpfully. When you're "
    "ready, just say hello!"
)

#: Default wall-clock budget for one synchronous exchange (30 minutes).
DEFAULT_TIMEOUT = 1800.0

#: Maximum characters per outbound chat message.
MESSAGE_LIMIT = 2000

#: Slash commands understood by the agent CLI itself.
AGENT_COMMANDS = ("/help", "/clear", "/model", "/undo", "/redo", "/settings")

#: Env vars stripped from agent subprocesses so they use subscription auth.
STRIPPED_ENV_KEYS = ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GOOGLE_API_KEY")

#: Default V8 heap cap (MB) for Node.js based agent CLIs.
NODE_HEAP_LIMIT_MB = 2048
