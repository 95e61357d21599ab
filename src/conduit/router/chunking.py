"""Outbound chunking — respect the chat platform's message length ceiling."""

from __future__ import annotations

from conduit.constants import MESSAGE_LIMIT


def split_message(content: str, limit: int = MESSAGE_LIMIT) -> list[str]:
    """Split *content* into ordered chunks of at most *limit* characters.

    Prefers to break just after the last newline inside each window and
    falls back to a hard cut.  Joining the chunks gives back *content*.
    """
    if limit < 1:
        msg = f"Chunk limit must be positive, got {limit}"
        raise ValueError(msg)

    chunks: list[str] = []
    remaining = content
    while len(remaining) > limit:
        window = remaining[:limit]
        cut = window.rfind("\n") + 1
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]
    if remaining:
        chunks.append(remaining)
    return chunks
