"""SynchronousExchange — one blocking request/response run of the agent CLI."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Sequence
from pathlib import Path

from conduit.agent.helpers import build_cli_env, format_stderr_preview
from conduit.agent.normalizer import extract
from conduit.constants import NODE_HEAP_LIMIT_MB, STRIPPED_ENV_KEYS
from conduit.errors import ExchangeTimeoutError, LaunchError
from conduit.session.models import NormalizedMessage

logger = logging.getLogger(__name__)


class SynchronousExchange:
    """Runs the agent CLI once per prompt and normalizes its JSON answer.

    Each ``run()`` spawns a fresh process (``<command> -p <prompt>
    --output-format json``), waits for it to exit, and turns standard
    output into zero or one :class:`NormalizedMessage`.  The wait is an
    awaitable on the event loop, so other channels keep being served
    while a slow agent thinks.
    """

    def __init__(
        self,
        command: str = "claude",
        extra_args: Sequence[str] = (),
        stripped_env_keys: Sequence[str] = STRIPPED_ENV_KEYS,
        node_heap_limit_mb: int | None = NODE_HEAP_LIMIT_MB,
    ) -> None:
        self._command = command
        self._extra_args = list(extra_args)
        self._stripped_env_keys = tuple(stripped_env_keys)
        self._node_heap_limit_mb = node_heap_limit_mb

    def build_args(self, prompt: str) -> list[str]:
        """Return the argv for a single-shot JSON invocation."""
        return [
            self._command,
            "-p",
            prompt,
            "--output-format",
            "json",
            *self._extra_args,
        ]

    async def run(
        self,
        prompt: str,
        timeout: float,
        cwd: str | Path | None = None,
        *,
        channel_id: str,
    ) -> list[NormalizedMessage]:
        """Run one exchange and return the messages it produced.

        Raises:
            LaunchError: The process could not be started.
            ExchangeTimeoutError: No exit within *timeout* seconds.  The
                process is killed and any partial output is dropped.
        """
        args = self.build_args(prompt)
        logger.debug("Running agent for channel %s: %s", channel_id, args[:1] + args[3:])

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=build_cli_env(self._stripped_env_keys, self._node_heap_limit_mb),
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            msg = (
                f"Agent CLI '{self._command}' not found (or working directory "
                f"{cwd} missing). Make sure it is installed and on your PATH."
            )
            raise LaunchError(msg) from exc
        except OSError as exc:
            msg = f"Failed to start agent CLI '{self._command}': {exc}"
            raise LaunchError(msg) from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=timeout
            )
        except TimeoutError:
            await self._kill(proc)
            logger.error(
                "Agent for channel %s timed out after %ss", channel_id, timeout
            )
            raise ExchangeTimeoutError(timeout) from None
        except asyncio.CancelledError:
            logger.info("Exchange for channel %s cancelled, stopping agent", channel_id)
            await self._kill(proc)
            raise

        logger.info(
            "Agent for channel %s exited with code %s", channel_id, proc.returncode
        )
        stdout_text = stdout_bytes.decode(errors="replace")
        stderr_text = stderr_bytes.decode(errors="replace").strip()
        logger.debug("Agent stdout: %s", stdout_text[:2048])

        if proc.returncode != 0:
            preview = format_stderr_preview(stderr_text)
            logger.warning(
                "Agent exited with code %s.%s",
                proc.returncode,
                f" Stderr:\n  {preview}" if preview else "",
            )
        elif stderr_text:
            logger.debug("Agent stderr: %s", stderr_text[:2048])

        content = extract(stdout_text)
        if content is None:
            return []
        return [NormalizedMessage(channel_id=channel_id, content=content, kind="message")]

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        """SIGKILL the process and reap it."""
        if proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
