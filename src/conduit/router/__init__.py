"""Router — delivery of normalized agent output to the chat surface."""

from conduit.router.chunking import split_message
from conduit.router.router import ConsoleRouter, MessageRouter

__all__ = [
    "ConsoleRouter",
    "MessageRouter",
    "split_message",
]
