"""Session state — models and the channel registry."""

from conduit.session.models import (
    MessageKind,
    NormalizedMessage,
    Session,
    SessionMode,
)
from conduit.session.registry import SessionRegistry

__all__ = [
    "MessageKind",
    "NormalizedMessage",
    "Session",
    "SessionMode",
    "SessionRegistry",
]
