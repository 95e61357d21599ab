"""Agent subprocess layer — exchanges, streaming channels, normalization."""

from conduit.agent.exchange import SynchronousExchange
from conduit.agent.framing import LineFramer
from conduit.agent.normalizer import extract, record_to_message
from conduit.agent.streaming import StreamingChannel

__all__ = [
    "LineFramer",
    "StreamingChannel",
    "SynchronousExchange",
    "extract",
    "record_to_message",
]
