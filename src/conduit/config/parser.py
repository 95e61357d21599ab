"""Load, validate, and resolve conduit.yaml configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from conduit.config.models import ConduitConfig
from conduit.errors import ConduitError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "conduit.yaml"


class ConfigError(ConduitError):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> ConduitConfig:
    """Load and validate a conduit.yaml file.

    Args:
        path: Explicit config file path. If None, uses conduit.yaml in the
              current directory when present, defaults otherwise.

    Returns:
        A validated ConduitConfig instance.

    Raises:
        ConfigError: On missing file, bad YAML, or validation failure.
    """
    config_path = _resolve_path(path)
    if config_path is None:
        logger.debug("No %s found, using defaults", DEFAULT_CONFIG_NAME)
        return ConduitConfig()

    raw = _read_yaml(config_path)
    _resolve_working_dir(raw, config_path.parent)
    _load_env(config_path.parent)
    return _validate(raw)


def _resolve_path(path: Path | None) -> Path | None:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = Path.cwd() / DEFAULT_CONFIG_NAME
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        detail = ""
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            detail = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{detail}"
        raise ConfigError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)

    return data


def _resolve_working_dir(raw: dict[str, Any], base_dir: Path) -> None:
    agent = raw.get("agent")
    if not isinstance(agent, dict):
        return
    working_dir = agent.get("working_dir")
    if not isinstance(working_dir, str) or not working_dir:
        return

    resolved = (base_dir / Path(working_dir).expanduser()).resolve()
    if not resolved.is_dir():
        msg = f"Agent working directory not found: {working_dir}"
        raise ConfigError(msg)
    agent["working_dir"] = str(resolved)


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _validate(raw: dict[str, Any]) -> ConduitConfig:
    try:
        return ConduitConfig.model_validate(raw)
    except ValidationError as exc:
        errors = exc.errors()
        parts: list[str] = []
        for err in errors:
            loc = " → ".join(str(s) for s in err["loc"])
            msg = err["msg"].removeprefix("Value error, ")
            if msg.lower().startswith("input should be"):
                msg = f"Invalid value: {msg}"
            parts.append(f"  {loc}: {msg}")
        joined = "\n".join(parts)
        msg = f"Config validation failed:\n{joined}"
        raise ConfigError(msg) from exc
