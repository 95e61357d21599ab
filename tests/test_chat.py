"""Tests for the ``conduit chat`` REPL — command parsing and dispatch."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from conduit.commands.chat import _handle_command, _handle_line, _repl_loop
from conduit.errors import ExchangeTimeoutError, LaunchError
from conduit.session.manager import SessionManager
from conduit.session.models import NormalizedMessage
from conduit.session.registry import SessionRegistry

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


class MockExchange:
    """Fake synchronous exchange that echoes the prompt back."""

    def __init__(self, error: Exception | None = None, delay: float = 0.0) -> None:
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []
        self.cancelled = False

    async def run(
        self,
        prompt: str,
        timeout: float,
        cwd: str | Path | None = None,
        *,
        channel_id: str,
    ) -> list[NormalizedMessage]:
        self.prompts.append(prompt)
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return [NormalizedMessage(channel_id=channel_id, content=f"echo: {prompt}")]


class MockChannel:
    """Fake streaming channel that never produces output."""

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id
        self.exit_error = None
        self._done = asyncio.Event()

    async def open(self, session_id: str, cwd: Any = None) -> None:
        pass

    async def messages(self):  # type: ignore[no-untyped-def]
        await self._done.wait()
        return
        yield

    async def close(self) -> None:
        self._done.set()


class MockRouter:
    def __init__(self) -> None:
        self.delivered: list[NormalizedMessage] = []

    async def deliver(self, message: NormalizedMessage) -> None:
        self.delivered.append(message)

    async def session_ended(self, channel_id: str) -> None:
        pass


def _make_manager(
    exchange: MockExchange | None = None,
) -> tuple[SessionManager, MockExchange, MockRouter]:
    exchange = exchange or MockExchange()
    router = MockRouter()
    manager = SessionManager(
        SessionRegistry(),
        router,
        exchange=exchange,  # type: ignore[arg-type]
        channel_factory=MockChannel,  # type: ignore[arg-type]
        greeting="say hello",
    )
    return manager, exchange, router


# ================================================================== #
# Slash commands
# ================================================================== #


class TestHandleCommand:
    async def test_quit_and_exit(self) -> None:
        manager, _, _ = _make_manager()
        assert await _handle_command("/quit", manager, "c") is True
        assert await _handle_command("/exit", manager, "c") is True

    async def test_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, _, _ = _make_manager()
        assert await _handle_command("/help", manager, "c") is False
        out = capsys.readouterr().out
        assert "/start" in out
        assert "/resume" in out

    async def test_start(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, exchange, router = _make_manager()
        await _handle_command("/start", manager, "c")

        out = capsys.readouterr().out
        assert "Session started: chat_c_" in out
        assert exchange.prompts == ["say hello"]
        assert router.delivered[0].content == "echo: say hello"

    async def test_start_when_active(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, exchange, _ = _make_manager()
        await manager.start_session("c")
        capsys.readouterr()

        await _handle_command("/start", manager, "c")
        assert "already active" in capsys.readouterr().out
        assert len(exchange.prompts) == 1

    async def test_start_failure(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, _, _ = _make_manager(MockExchange(error=LaunchError("claude not found")))
        await _handle_command("/start", manager, "c")

        assert "Failed to start session: claude not found" in capsys.readouterr().err
        assert manager.get_session("c") is None

    async def test_resume_requires_id(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, _, _ = _make_manager()
        await _handle_command("/resume", manager, "c")
        assert "Usage: /resume <session-id>" in capsys.readouterr().out

    async def test_resume(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, _, _ = _make_manager()
        await _handle_command("/resume abc-123", manager, "c")

        assert "Session resumed: abc-123" in capsys.readouterr().out
        session = manager.get_session("c")
        assert session.mode == "streaming"
        await manager.shutdown()

    async def test_stop(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, _, _ = _make_manager()
        session_id = await manager.start_session("c")

        await _handle_command("/stop", manager, "c")
        assert f"Session ended: {session_id}" in capsys.readouterr().out
        assert manager.get_session("c") is None

    async def test_stop_without_session(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, _, _ = _make_manager()
        await _handle_command("/stop", manager, "c")
        assert "No active session in this channel." in capsys.readouterr().out

    async def test_session_and_sessions(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, _, _ = _make_manager()
        await _handle_command("/sessions", manager, "c")
        assert "No live sessions." in capsys.readouterr().out

        session_id = await manager.start_session("c")
        await _handle_command("/session", manager, "c")
        assert f"{session_id} (synchronous" in capsys.readouterr().out

        await _handle_command("/sessions", manager, "c")
        assert f"#c: {session_id}" in capsys.readouterr().out

    async def test_unknown_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, _, _ = _make_manager()
        await _handle_command("/frobnicate", manager, "c")
        assert "Unknown command: /frobnicate" in capsys.readouterr().out


# ================================================================== #
# Plain lines
# ================================================================== #


class TestHandleLine:
    async def test_message_without_session(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, exchange, _ = _make_manager()
        await _handle_line("hello", manager, "c")
        assert "No active session" in capsys.readouterr().out
        assert exchange.prompts == []

    async def test_message_sent(self) -> None:
        manager, exchange, router = _make_manager()
        await manager.start_session("c")

        await _handle_line("what now?", manager, "c")
        assert exchange.prompts[-1] == "what now?"
        assert router.delivered[-1].content == "echo: what now?"

    async def test_agent_command_passed_through(self) -> None:
        manager, exchange, _ = _make_manager()
        await manager.start_session("c")

        await _handle_line("/clear", manager, "c")
        assert exchange.prompts[-1] == "/clear"

    async def test_agent_command_without_session_is_local(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        manager, exchange, _ = _make_manager()
        await _handle_line("/help", manager, "c")
        assert "/resume" in capsys.readouterr().out
        assert exchange.prompts == []

    async def test_exchange_error_reported(self, capsys: pytest.CaptureFixture[str]) -> None:
        manager, exchange, _ = _make_manager()
        await manager.start_session("c")
        exchange.error = ExchangeTimeoutError(5)

        assert await _handle_line("slow", manager, "c") is False
        assert "did not answer within 5s" in capsys.readouterr().err
        assert manager.get_session("c") is not None

    async def test_plain_message_to_streaming_session(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        manager, _, _ = _make_manager()
        await manager.resume_session("c", "abc")

        await _handle_line("hello", manager, "c")
        assert "streaming mode" in capsys.readouterr().err
        await manager.shutdown()


# ================================================================== #
# REPL loop
# ================================================================== #


class TestReplLoop:
    async def test_start_message_quit(self) -> None:
        manager, exchange, router = _make_manager()
        shutdown = asyncio.Event()
        inputs = ["/start", "", "  hi  ", "/quit", "never read"]

        with patch("conduit.commands.chat._read_input", side_effect=inputs):
            await _repl_loop(manager, "c", shutdown)

        assert exchange.prompts == ["say hello", "hi"]
        assert [m.content for m in router.delivered] == ["echo: say hello", "echo: hi"]

    async def test_eof_exits(self) -> None:
        manager, _, _ = _make_manager()
        shutdown = asyncio.Event()
        with patch("conduit.commands.chat._read_input", side_effect=EOFError):
            await _repl_loop(manager, "c", shutdown)

    async def test_shutdown_event_stops_loop(self) -> None:
        manager, _, _ = _make_manager()
        shutdown = asyncio.Event()
        shutdown.set()
        with patch("conduit.commands.chat._read_input") as mock_input:
            await _repl_loop(manager, "c", shutdown)
        mock_input.assert_not_called()

    async def test_signal_interrupts_running_exchange(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        manager, exchange, _ = _make_manager(MockExchange(delay=30))
        shutdown = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, shutdown.set)

        with patch(
            "conduit.commands.chat._read_input", side_effect=["/start", "/quit"]
        ) as mock_input:
            await asyncio.wait_for(_repl_loop(manager, "c", shutdown), timeout=2)

        assert exchange.prompts == ["say hello"]
        assert exchange.cancelled is True
        assert manager.get_session("c") is None
        assert mock_input.call_count == 1
        assert "Interrupted." in capsys.readouterr().out
