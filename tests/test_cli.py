"""Smoke tests for the Conduit CLI."""

from pathlib import Path
from unittest.mock import patch

from click.testing import CliRunner

from conduit import __version__
from conduit.cli import cli
from conduit.config.parser import load_config


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Conduit" in result.output
    assert "chat" in result.output
    assert "init" in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"conduit, version {__version__}" in result.output


def test_init_creates_valid_config() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert "Created conduit.yaml" in result.output

        config = load_config(Path("conduit.yaml"))
        assert config.agent.command == "claude"
        assert config.chat.channel == "local"


def test_init_refuses_overwrite() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("conduit.yaml").write_text("version: '1'\n")
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 1
        assert "already exists" in result.output
        assert Path("conduit.yaml").read_text() == "version: '1'\n"


def test_init_force_overwrites() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        Path("conduit.yaml").write_text("version: '1'\n")
        result = runner.invoke(cli, ["init", "--force"])
        assert result.exit_code == 0
        assert "agent:" in Path("conduit.yaml").read_text()


def test_chat_flags() -> None:
    result = CliRunner().invoke(cli, ["chat", "--help"])
    assert result.exit_code == 0
    assert "--cwd" in result.output
    assert "--channel" in result.output
    assert "--verbose" in result.output


def test_chat_missing_config_errors() -> None:
    runner = CliRunner()
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["chat", "-f", "missing.yaml"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


def test_chat_quit_immediately() -> None:
    runner = CliRunner()
    with (
        runner.isolated_filesystem(),
        patch("conduit.commands.chat._read_input", side_effect=["/quit"]),
    ):
        result = runner.invoke(cli, ["chat", "--channel", "dev"])
        assert result.exit_code == 0
        assert "#dev" in result.output
        assert "Bye." in result.output
