"""Shared helper functions for agent subprocess handling."""

from __future__ import annotations

import os
from collections.abc import Iterable


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def build_cli_env(
    stripped_keys: Iterable[str],
    node_heap_limit_mb: int | None = None,
) -> dict[str, str]:
    """Return a copy of the environment prepared for an agent subprocess.

    Strips LLM API keys so the CLI uses its own subscription auth and caps
    the Node.js V8 heap so one agent cannot OOM the host.
    """
    stripped = set(stripped_keys)
    env = {k: v for k, v in os.environ.items() if k not in stripped}
    if node_heap_limit_mb is not None:
        node_opts = env.get("NODE_OPTIONS", "")
        if "--max-old-space-size" not in node_opts:
            separator = " " if node_opts else ""
            heap_flag = f"--max-old-space-size={node_heap_limit_mb}"
            env["NODE_OPTIONS"] = f"{node_opts}{separator}{heap_flag}"
    return env
