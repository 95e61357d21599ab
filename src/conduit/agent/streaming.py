"""StreamingChannel — a long-lived agent process read as JSONL records."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

from conduit.agent.framing import LineFramer
from conduit.agent.helpers import build_cli_env
from conduit.agent.normalizer import record_to_message
from conduit.constants import NODE_HEAP_LIMIT_MB, STRIPPED_ENV_KEYS
from conduit.errors import LaunchError, ProcessExitError
from conduit.session.models import NormalizedMessage

logger = logging.getLogger(__name__)

#: Seconds to wait after SIGTERM before SIGKILL.
_TERMINATE_GRACE = 5.0

#: Seconds to wait after SIGKILL before giving up on the process.
_KILL_GRACE = 3.0

#: Bytes requested per read from the subprocess pipes.
_READ_CHUNK_BYTES = 65_536

#: Maximum length of one JSONL line (1 MB).
_MAX_LINE_BYTES = 1_048_576


class StreamingChannel:
    """Owns one resumed agent process and turns its output into messages.

    Life cycle: ``open()`` spawns ``<command> --resume <id> --output-format
    stream-json``; ``messages()`` yields :class:`NormalizedMessage` values
    in output order until the process exits or ``close()`` is called.

    * stdout goes through a private :class:`LineFramer`; each complete line
      is parsed as JSON and mapped with ``record_to_message``.  Lines that
      are not JSON are logged and dropped.
    * every stderr chunk becomes an Error-kind message.
    * after exit, a trailing partial stdout line is discarded.

    ``close()`` is the cancellation path: delivery stops at once and the
    process is terminated (SIGTERM, then SIGKILL after a grace period).
    """

    def __init__(
        self,
        channel_id: str,
        *,
        command: str = "claude",
        extra_args: Sequence[str] = (),
        stripped_env_keys: Sequence[str] = STRIPPED_ENV_KEYS,
        node_heap_limit_mb: int | None = NODE_HEAP_LIMIT_MB,
        terminate_grace: float = _TERMINATE_GRACE,
        kill_grace: float = _KILL_GRACE,
        read_chunk_bytes: int = _READ_CHUNK_BYTES,
        max_line_bytes: int = _MAX_LINE_BYTES,
    ) -> None:
        self.channel_id = channel_id
        self._command = command
        self._extra_args = list(extra_args)
        self._stripped_env_keys = tuple(stripped_env_keys)
        self._node_heap_limit_mb = node_heap_limit_mb
        self._terminate_grace = terminate_grace
        self._kill_grace = kill_grace
        self._read_chunk_bytes = read_chunk_bytes

        self._framer = LineFramer(max_line_length=max_line_bytes)
        self._stderr_decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._queue: asyncio.Queue[NormalizedMessage | None] = asyncio.Queue()

        self._process: asyncio.subprocess.Process | None = None
        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._supervisor: asyncio.Task[None] | None = None

        self._cancelled = False
        self._exited = False
        self.exit_error: ProcessExitError | None = None

    @property
    def pid(self) -> int | None:
        """PID of the agent process, or ``None`` before ``open()``."""
        return self._process.pid if self._process is not None else None

    @property
    def closed(self) -> bool:
        """True once the process exited or the channel was cancelled."""
        return self._cancelled or self._exited

    def build_args(self, session_id: str) -> list[str]:
        """Return the argv for a resumed streaming invocation."""
        return [
            self._command,
            "--resume",
            session_id,
            "--output-format",
            "stream-json",
            *self._extra_args,
        ]

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def open(self, session_id: str, cwd: str | Path | None = None) -> None:
        """Spawn the agent process and start reading its output.

        Raises:
            LaunchError: The process could not be started.
        """
        if self._process is not None:
            msg = f"Streaming channel for '{self.channel_id}' is already open"
            raise RuntimeError(msg)

        args = self.build_args(session_id)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
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

        logger.info(
            "Resumed session %s for channel %s (pid %s)",
            session_id,
            self.channel_id,
            self._process.pid,
        )
        self._stdout_task = asyncio.create_task(self._read_stdout())
        self._stderr_task = asyncio.create_task(self._read_stderr())
        self._supervisor = asyncio.create_task(self._supervise())

    async def messages(self) -> AsyncIterator[NormalizedMessage]:
        """Yield messages in output order until the channel closes."""
        while True:
            item = await self._queue.get()
            if item is None or self._cancelled:
                return
            yield item

    async def close(self) -> None:
        """Stop delivery and terminate the process. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        # Wake any consumer blocked in messages().
        self._queue.put_nowait(None)

        proc = self._process
        if proc is not None and not self._exited and proc.returncode is None:
            await self._terminate(proc)

        for task in (self._stdout_task, self._stderr_task):
            if task is not None and not task.done():
                task.cancel()

        if self._supervisor is not None and not self._supervisor.done():
            try:
                await asyncio.wait_for(self._supervisor, timeout=self._kill_grace)
            except TimeoutError:
                logger.error(
                    "Agent process for channel %s did not report exit; abandoning",
                    self.channel_id,
                )

    async def wait(self) -> int | None:
        """Wait for the process to exit and return its exit code."""
        if self._supervisor is not None:
            await asyncio.wait({self._supervisor})
        return self.exit_error.returncode if self.exit_error is not None else None

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM -> wait -> SIGKILL -> wait."""
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._terminate_grace)
            return
        except TimeoutError:
            logger.warning(
                "Agent process for channel %s ignored SIGTERM, killing",
                self.channel_id,
            )

        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._kill_grace)
        except TimeoutError:
            logger.error(
                "Agent process for channel %s still running after SIGKILL",
                self.channel_id,
            )

    # ------------------------------------------------------------------ #
    # Readers
    # ------------------------------------------------------------------ #

    async def _read_stdout(self) -> None:
        """Frame stdout into lines and dispatch each parsed record."""
        proc = self._process
        if proc is None or proc.stdout is None:
            return

        try:
            while True:
                chunk = await proc.stdout.read(self._read_chunk_bytes)
                if not chunk:
                    break
                for line in self._framer.feed(chunk):
                    self._dispatch_line(line)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("%s: error reading agent stdout: %s", self.channel_id, exc)

        if self._framer.partial:
            logger.debug(
                "%s: discarding unterminated output at exit: %s",
                self.channel_id,
                self._framer.partial[:200],
            )

    def _dispatch_line(self, line: str) -> None:
        line_str = line.strip()
        if not line_str:
            return

        try:
            record = json.loads(line_str)
        except json.JSONDecodeError:
            logger.warning(
                "%s: non-JSON output from agent: %s", self.channel_id, line_str[:200]
            )
            return

        message = record_to_message(record, self.channel_id)
        if message is not None:
            self._emit(message)

    async def _read_stderr(self) -> None:
        """Forward each stderr chunk as an Error-kind message."""
        proc = self._process
        if proc is None or proc.stderr is None:
            return

        try:
            while True:
                chunk = await proc.stderr.read(self._read_chunk_bytes)
                if not chunk:
                    self._emit_stderr(self._stderr_decoder.decode(b"", final=True))
                    break
                self._emit_stderr(self._stderr_decoder.decode(chunk))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("%s: error reading agent stderr: %s", self.channel_id, exc)

    def _emit_stderr(self, text: str) -> None:
        text = text.strip()
        if not text:
            return
        logger.error("%s: agent stderr: %s", self.channel_id, text[:2048])
        self._emit(
            NormalizedMessage(
                channel_id=self.channel_id,
                content=f"Error: {text}",
                kind="error",
            )
        )

    def _emit(self, message: NormalizedMessage) -> None:
        if self.closed:
            return
        self._queue.put_nowait(message)

    async def _supervise(self) -> None:
        """Wait for both readers and the process, then mark the channel closed."""
        proc = self._process
        returncode: int | None = None
        try:
            readers = [t for t in (self._stdout_task, self._stderr_task) if t is not None]
            await asyncio.gather(*readers, return_exceptions=True)
            if proc is not None:
                returncode = await proc.wait()
        finally:
            self._exited = True
            self.exit_error = ProcessExitError(self.channel_id, returncode)
            logger.info(
                "Agent process for channel %s exited with code %s",
                self.channel_id,
                returncode,
            )
            self._queue.put_nowait(None)
