"""Configuration models and parser for conduit.yaml."""

from conduit.config.models import (
    AgentConfig,
    ChatConfig,
    ConduitConfig,
    StreamingConfig,
)
from conduit.config.parser import ConfigError, load_config

__all__ = [
    "AgentConfig",
    "ChatConfig",
    "ConduitConfig",
    "ConfigError",
    "StreamingConfig",
    "load_config",
]
