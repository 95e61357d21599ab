"""LineFramer — split a chunked byte/text stream into complete lines."""

from __future__ import annotations

import codecs
import logging

logger = logging.getLogger(__name__)


class LineFramer:
    """Stateful accumulator turning arbitrary chunks into whole lines.

    ``feed()`` returns every line completed by the chunk (without the
    trailing ``\\n``) and keeps the unterminated tail as :attr:`partial`.
    Bytes are decoded incrementally as UTF-8, so a multi-byte character
    split across chunks is reassembled rather than mangled.

    When *max_line_length* is set, a line growing past it is dropped up to
    its terminating newline.

    One instance per stream; not safe to share between tasks or threads.
    """

    def __init__(self, max_line_length: int | None = None) -> None:
        self._partial = ""
        self._max_line_length = max_line_length
        self._discarding = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def partial(self) -> str:
        """Trailing fragment not yet terminated by a newline."""
        return self._partial

    def feed(self, chunk: bytes | str) -> list[str]:
        """Add *chunk* and return the lines it completes, in order."""
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not text:
            return []

        pieces = (self._partial + text).split("\n")
        self._partial = pieces.pop()

        lines: list[str] = []
        for piece in pieces:
            if self._discarding:
                # Tail of an oversized line; drop it and resume.
                self._discarding = False
                continue
            if self._too_long(piece):
                logger.warning(
                    "Dropping line of %d characters (limit %d)",
                    len(piece),
                    self._max_line_length,
                )
                continue
            lines.append(piece)

        if self._too_long(self._partial):
            logger.warning(
                "Partial line exceeds %d characters, discarding until newline",
                self._max_line_length,
            )
            self._partial = ""
            self._discarding = True

        return lines

    def _too_long(self, text: str) -> bool:
        return self._max_line_length is not None and len(text) > self._max_line_length
