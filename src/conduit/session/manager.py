"""SessionManager — public façade for per-channel agent conversations."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path

from conduit.agent.exchange import SynchronousExchange
from conduit.agent.streaming import StreamingChannel
from conduit.config.models import ConduitConfig
from conduit.constants import AGENT_COMMANDS, DEFAULT_TIMEOUT, GREETING_PROMPT
from conduit.errors import AlreadyActiveError, ModeMismatchError, NoActiveSessionError
from conduit.router.router import MessageRouter
from conduit.session.models import NormalizedMessage, Session
from conduit.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

#: Builds a fresh, unopened streaming channel for a channel id.
ChannelFactory = Callable[[str], StreamingChannel]


class SessionManager:
    """Brokers chat channels to the agent CLI, one session per channel.

    Synchronous sessions run one :class:`SynchronousExchange` per turn and
    keep no process between turns.  Streaming sessions own a
    :class:`StreamingChannel` whose output is pumped to the router until
    the process exits, after which the session is dropped and
    ``router.session_ended`` fires.

    Starts, sends and resumes for one channel are serialized; different
    channels run concurrently.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        router: MessageRouter,
        *,
        exchange: SynchronousExchange | None = None,
        channel_factory: ChannelFactory | None = None,
        working_dir: str | Path | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        greeting: str = GREETING_PROMPT,
        session_prefix: str = "chat",
    ) -> None:
        self._registry = registry
        self._router = router
        self._exchange = exchange or SynchronousExchange()
        self._channel_factory: ChannelFactory = channel_factory or StreamingChannel
        self._working_dir = working_dir
        self._timeout = timeout
        self._greeting = greeting
        self._session_prefix = session_prefix

        self._exchange_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._pumps: dict[str, asyncio.Task[None]] = {}

        if working_dir is not None:
            logger.info("Session manager using working directory %s", working_dir)

    @classmethod
    def from_config(
        cls,
        config: ConduitConfig,
        registry: SessionRegistry,
        router: MessageRouter,
        working_dir: str | Path | None = None,
    ) -> SessionManager:
        """Build a manager wired to the agent settings in *config*.

        *working_dir* overrides ``agent.working_dir`` when given.
        """
        agent = config.agent
        streaming = config.streaming

        def _make_channel(channel_id: str) -> StreamingChannel:
            return StreamingChannel(
                channel_id,
                command=agent.command,
                extra_args=agent.args,
                stripped_env_keys=agent.stripped_env,
                node_heap_limit_mb=agent.node_heap_limit_mb,
                terminate_grace=streaming.terminate_grace,
                kill_grace=streaming.kill_grace,
                read_chunk_bytes=streaming.read_chunk_bytes,
                max_line_bytes=streaming.max_line_bytes,
            )

        return cls(
            registry,
            router,
            exchange=SynchronousExchange(
                command=agent.command,
                extra_args=agent.args,
                stripped_env_keys=agent.stripped_env,
                node_heap_limit_mb=agent.node_heap_limit_mb,
            ),
            channel_factory=_make_channel,
            working_dir=working_dir or agent.working_dir,
            timeout=agent.timeout,
            greeting=agent.greeting,
            session_prefix=config.chat.session_prefix,
        )

    @property
    def working_dir(self) -> str | Path | None:
        """Directory every agent process is started in."""
        return self._working_dir

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    async def start_session(self, channel_id: str) -> str:
        """Start a synchronous session and return its new session id.

        Raises:
            AlreadyActiveError: The channel already has a session.
            LaunchError: The greeting exchange could not start the agent.
            ExchangeTimeoutError: The greeting exchange timed out.
        """
        async with self._exchange_locks[channel_id]:
            if self._registry.lookup(channel_id) is not None:
                raise AlreadyActiveError(channel_id)

            await self.end_session(channel_id)
            logger.info("Starting session for channel %s", channel_id)

            messages = await self._exchange.run(
                self._greeting,
                self._timeout,
                self._working_dir,
                channel_id=channel_id,
            )
            await self._deliver_all(channel_id, messages)

            session_id = self._new_session_id(channel_id)
            self._registry.put(
                channel_id,
                Session(
                    channel_id=channel_id,
                    session_id=session_id,
                    mode="synchronous",
                ),
            )
            return session_id

    async def send_message(self, channel_id: str, text: str) -> None:
        """Run one exchange with *text* and forward the agent's reply.

        Raises:
            NoActiveSessionError: The channel has no session.
            ModeMismatchError: The session is streaming.
            LaunchError: The agent could not be started.
            ExchangeTimeoutError: The agent did not answer in time.
        """
        async with self._exchange_locks[channel_id]:
            session = self._registry.lookup(channel_id)
            if session is None:
                raise NoActiveSessionError(channel_id)
            if session.mode != "synchronous":
                raise ModeMismatchError(channel_id, session.mode)

            logger.info("Sending message to agent for channel %s", channel_id)
            logger.debug("Message text: %s", text[:200])
            messages = await self._exchange.run(
                text,
                self._timeout,
                self._working_dir,
                channel_id=channel_id,
            )
            await self._deliver_all(channel_id, messages)
            session.touch()

    async def resume_session(self, channel_id: str, session_id: str) -> None:
        """Replace the channel's session with a streaming one for *session_id*.

        Raises:
            LaunchError: The agent process could not be started.  The
                previous session is already gone at that point.
        """
        async with self._exchange_locks[channel_id]:
            await self.end_session(channel_id)
            logger.info("Resuming session %s for channel %s", session_id, channel_id)

            channel = self._channel_factory(channel_id)
            await channel.open(session_id, self._working_dir)

            session = Session(
                channel_id=channel_id,
                session_id=session_id,
                mode="streaming",
                channel=channel,
            )
            self._registry.put(channel_id, session)
            pump = asyncio.create_task(self._pump(session))
            self._pumps[channel_id] = pump
            pump.add_done_callback(lambda task: self._pump_done(channel_id, task))

    async def end_session(self, channel_id: str) -> None:
        """Tear down the channel's session. No-op without one."""
        session = self._registry.remove(channel_id)
        if session is None:
            return

        logger.info(
            "Ending %s session %s for channel %s",
            session.mode,
            session.session_id,
            channel_id,
        )
        if session.channel is None:
            return

        await session.channel.close()
        pump = self._pumps.get(channel_id)
        # A router callback may end its own session from inside the pump.
        if pump is not None and not pump.done() and pump is not asyncio.current_task():
            await asyncio.wait({pump})

    def get_session(self, channel_id: str) -> Session | None:
        """Return the channel's session, if any."""
        return self._registry.lookup(channel_id)

    def all_sessions(self) -> dict[str, Session]:
        """Return a snapshot of every live session keyed by channel id."""
        return self._registry.snapshot()

    @staticmethod
    def is_agent_command(content: str) -> bool:
        """True if *content* is one of the agent CLI's own slash commands."""
        return content.startswith(AGENT_COMMANDS)

    async def shutdown(self) -> None:
        """End every live session."""
        for channel_id in list(self._registry.snapshot()):
            try:
                await self.end_session(channel_id)
            except Exception:
                logger.exception("Error ending session for channel %s", channel_id)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _new_session_id(self, channel_id: str) -> str:
        return f"{self._session_prefix}_{channel_id}_{time.time_ns() // 1_000_000}"

    async def _deliver_all(
        self, channel_id: str, messages: list[NormalizedMessage]
    ) -> None:
        if not messages:
            logger.warning("Empty output from agent for channel %s", channel_id)
            return
        for message in messages:
            await self._deliver(message)

    async def _deliver(self, message: NormalizedMessage) -> None:
        try:
            await self._router.deliver(message)
        except Exception as exc:
            logger.error(
                "Failed to deliver message to channel %s: %s", message.channel_id, exc
            )

    async def _pump(self, session: Session) -> None:
        """Forward streaming output, then drop the session and announce the end."""
        channel = session.channel
        if channel is None:
            return

        try:
            async for message in channel.messages():
                session.touch()
                await self._deliver(message)
        finally:
            await channel.close()
            if channel.exit_error is not None:
                logger.info("%s", channel.exit_error)
            self._registry.discard(session.channel_id, session)
            try:
                await self._router.session_ended(session.channel_id)
            except Exception as exc:
                logger.error(
                    "session_ended handler failed for channel %s: %s",
                    session.channel_id,
                    exc,
                )

    def _pump_done(self, channel_id: str, task: asyncio.Task[None]) -> None:
        if self._pumps.get(channel_id) is task:
            del self._pumps[channel_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error("Stream pump for channel %s failed: %s", channel_id, task.exception())
