"""Conduit — chat-channel sessions brokered to a command-line agent."""

__version__ = "0.1.0"
