"""Output normalization — pull displayable text out of agent output.

Two shapes are handled:

* One-shot output (``--output-format json``): a single JSON value where the
  text lives in ``result``, ``content`` or ``message`` (first present wins),
  or the value is itself a string.  Non-JSON output degrades to the raw
  trimmed text.
* Stream records (``--output-format stream-json``): one JSON object per
  line, of which ``content`` deltas and ``error`` records are surfaced.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from conduit.errors import ParseError
from conduit.session.models import NormalizedMessage

logger = logging.getLogger(__name__)

#: A rule maps a parsed JSON value to content text, or ``None`` if it does not apply.
ExtractionRule = Callable[[Any], str | None]

#: Fallback text for error records without a message.
UNKNOWN_ERROR = "Unknown error"


def _field_rule(name: str) -> ExtractionRule:
    def _rule(value: Any) -> str | None:
        if not isinstance(value, dict):
            return None
        text = value.get(name)
        if isinstance(text, str) and text:
            return text
        return None

    _rule.__name__ = f"field_{name}"
    return _rule


def _bare_string_rule(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


#: Candidate rules, evaluated in order; the first match wins.
EXTRACTION_RULES: tuple[ExtractionRule, ...] = (
    _field_rule("result"),
    _field_rule("content"),
    _field_rule("message"),
    _bare_string_rule,
)


def parse_json(text: str) -> Any:
    """Parse *text* as JSON, raising ``ParseError`` on failure."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Output is not valid JSON: {exc.msg} (line {exc.lineno})"
        raise ParseError(msg) from exc


def extract(raw_text: str) -> str | None:
    """Return the display text carried by *raw_text*, or ``None``.

    Structured parse first; if that fails the trimmed raw text is used so
    an agent that does not speak JSON still gets heard.
    """
    text = raw_text.strip()
    if not text:
        return None

    try:
        value = parse_json(text)
    except ParseError as exc:
        logger.debug("Falling back to raw agent output: %s", exc)
        return text

    for rule in EXTRACTION_RULES:
        content = rule(value)
        if content is not None:
            return content

    logger.warning("No content field in agent output: %s", text[:200])
    return None


def record_to_message(
    record: Any, channel_id: str
) -> NormalizedMessage | None:
    """Map one stream record to a message, or ``None`` to ignore it.

    * ``{"type": "content", "delta": {"text": ...}}`` → Message-kind delta.
    * ``{"type": "error", "error": {"message": ...}}`` → Error-kind.
    """
    if not isinstance(record, dict):
        return None

    record_type = record.get("type")

    if record_type == "content":
        delta = record.get("delta")
        if isinstance(delta, dict):
            text = delta.get("text")
            if isinstance(text, str) and text:
                return NormalizedMessage(
                    channel_id=channel_id, content=text, kind="message"
                )
        return None

    if record_type == "error":
        error = record.get("error")
        error_msg = ""
        if isinstance(error, dict):
            error_msg = str(error.get("message") or "")
        elif isinstance(error, str):
            error_msg = error
        return NormalizedMessage(
            channel_id=channel_id,
            content=f"Error: {error_msg or UNKNOWN_ERROR}",
            kind="error",
        )

    return None
