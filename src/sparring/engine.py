"""UCI engine session on top of python-chess's async engine protocol.

One session owns one engine process and at most one in-flight search.
``chess.engine.popen_uci`` launches the process and runs the handshake.
Each search runs as a ``_SearchCommand`` on the protocol, which feeds
every raw engine line through ``sparring.uci.parse_line`` and routes
the result to that search's SearchHandle.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import AsyncIterator

import chess.engine

from sparring.levels import EloPolicy, MistakePolicy, PlayPolicy
from sparring.uci import (
    BestMove,
    ErrorLine,
    Event,
    ReadyOk,
    SearchInfo,
    go_command,
    parse_line,
    position_command,
    setoption_command,
)

logger = logging.getLogger(__name__)

MAX_UCI_ELO = 3190
MIN_SEARCH_TIMEOUT = 2.0    # seconds; floor for the 2x movetime guard
STOP_GRACE = 2.0            # seconds to wait for bestmove/readyok after stop


class EngineError(RuntimeError):
    """Base class for engine session failures."""


class EngineStartupError(EngineError):
    """The engine could not be launched or never completed the handshake."""


class EngineProtocolError(EngineError):
    """The current search failed; the session itself is still usable."""


class EngineCrashedError(EngineError):
    """The engine process is gone; the session must be recreated."""


class ConcurrentSearchError(EngineError):
    """A second search was issued while one was still in flight."""


def engine_options(policy: PlayPolicy, max_elo: int = MAX_UCI_ELO) -> list[tuple[str, object]]:
    """UCI options for a play policy, in the order they must be sent.

    UCI_LimitStrength always precedes UCI_Elo.
    """
    if isinstance(policy, MistakePolicy):
        return [
            ("UCI_LimitStrength", False),
            ("MultiPV", policy.multipv),
            ("Threads", 1),
            ("Hash", 1),
        ]
    if isinstance(policy, EloPolicy):
        return [
            ("UCI_LimitStrength", True),
            ("UCI_Elo", min(policy.target_rating, max_elo)),
            ("MultiPV", 1),
        ]
    raise TypeError(f"Unknown play policy: {policy!r}")


class _SearchCommand(chess.engine.BaseCommand[None]):
    """One ``go`` on the protocol, finished by its bestmove.

    A drained command also finishes on the readyok answering the
    ``isready`` sent after ``stop``.
    """

    def __init__(self, engine: chess.engine.UciProtocol, handle: SearchHandle, fen: str, go: str):
        super().__init__(engine)
        self.engine = engine
        self.handle = handle
        self.draining = False
        self._fen = fen
        self._go = go
        handle._command = self

    def start(self) -> None:
        self.engine.send_line(position_command(self._fen))
        self.engine.send_line(self._go)
        self.handle._mark_started()

    def line_received(self, line: str) -> None:
        event = parse_line(line)
        if event is None:
            return
        if isinstance(event, BestMove):
            self.handle._deliver(event)
            self._finish()
        elif self.draining:
            if isinstance(event, ReadyOk):
                self._finish()
        elif isinstance(event, SearchInfo):
            self.handle._deliver(event)
        elif isinstance(event, ErrorLine):
            logger.warning("Engine error during search %d: %s", self.handle.search_id, event.text)
            self.handle._deliver(EngineProtocolError(event.text))

    def stop(self) -> None:
        if self.state == chess.engine.CommandState.ACTIVE:
            self.engine.send_line("stop")

    def drain(self) -> None:
        if self.state != chess.engine.CommandState.ACTIVE or self.draining:
            return
        self.draining = True
        self.engine.send_line("stop")
        self.engine.send_line("isready")

    def engine_terminated(self, exc: Exception) -> None:
        self.handle._deliver(EngineCrashedError(str(exc)))
        self.handle._release()
        super().engine_terminated(exc)

    def _finish(self) -> None:
        if not self.result.done():
            self.result.set_result(None)
        self.set_finished()
        self.handle._release()


def _discard_result(task: asyncio.Task) -> None:
    # Search outcomes reach the caller through the handle queue
    if not task.cancelled():
        task.exception()


class SearchHandle:
    """The caller's view of one running search.

    Iterate ``events()`` for streamed SearchInfo lines followed by the
    terminal BestMove, or await ``result()`` for the BestMove alone.
    """

    def __init__(self, session: EngineSession, search_id: int, timeout: float):
        loop = asyncio.get_running_loop()
        self.search_id = search_id
        self.timeout = timeout
        self.cancelled = False
        self.finished = False
        self._session = session
        self._command: _SearchCommand | None = None
        self._queue: asyncio.Queue[Event | BaseException] = asyncio.Queue()
        self._started = loop.create_future()
        self._released = asyncio.Event()
        self._deadline = loop.time() + timeout

    @property
    def released(self) -> bool:
        return self._released.is_set()

    def _mark_started(self) -> None:
        if not self._started.done():
            self._started.set_result(None)

    def _deliver(self, item: Event | BaseException) -> None:
        self._queue.put_nowait(item)

    def _release(self) -> None:
        self._session._release(self)

    async def events(self) -> AsyncIterator[SearchInfo | BestMove]:
        loop = asyncio.get_running_loop()
        while not self.finished:
            remaining = max(0.0, self._deadline - loop.time())
            try:
                item = await asyncio.wait_for(self._queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                logger.warning("Search %d timed out after %.1fs", self.search_id, self.timeout)
                await self._session._drain(self)
                raise EngineProtocolError(
                    f"Search timed out after {self.timeout:.1f}s"
                ) from None
            if isinstance(item, BaseException):
                if not isinstance(item, EngineCrashedError):
                    await self._session._drain(self)
                raise item
            if isinstance(item, BestMove):
                self.finished = True
            yield item

    async def result(self) -> BestMove:
        async for event in self.events():
            if isinstance(event, BestMove):
                return event
        raise EngineProtocolError("Search ended without a bestmove")

    async def cancel(self) -> None:
        """Ask the engine to stop early. Its bestmove still arrives."""
        if self.finished or self.cancelled:
            return
        self.cancelled = True
        if self.released or self._command is None:
            return
        logger.debug("Cancelling search %d", self.search_id)
        self._command.stop()


class EngineSession:
    def __init__(
        self,
        engine_path: str = "stockfish",
        engine_args: list[str] | None = None,
        startup_timeout: float = 5.0,
        search_timeout: float = 60.0,
        max_elo: int = MAX_UCI_ELO,
    ):
        self._path = engine_path
        self._args = list(engine_args or [])
        self._startup_timeout = startup_timeout
        self._search_timeout = search_timeout
        self._max_elo = max_elo
        self._transport: asyncio.SubprocessTransport | None = None
        self._protocol: chess.engine.UciProtocol | None = None
        self._search: SearchHandle | None = None
        self._counter = itertools.count(1)

    @property
    def alive(self) -> bool:
        return self._protocol is not None and not self._protocol.returncode.done()

    @property
    def busy(self) -> bool:
        return self._search is not None

    @property
    def options(self) -> set[str]:
        """Option names the engine advertised during the handshake."""
        if self._protocol is None:
            return set()
        return set(self._protocol.options)

    async def __aenter__(self) -> EngineSession:
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._protocol is not None:
            await self.stop()
        try:
            self._transport, self._protocol = await asyncio.wait_for(
                self._launch(), timeout=self._startup_timeout,
            )
        except asyncio.TimeoutError as e:
            raise EngineStartupError(
                f"Engine did not acknowledge UCI within {self._startup_timeout:.1f}s"
            ) from e
        except OSError as e:
            raise EngineStartupError(f"Cannot launch engine {self._path!r}: {e}") from e
        except chess.engine.EngineError as e:
            raise EngineStartupError(f"Engine handshake failed: {e}") from e
        logger.info("Engine %s ready (%d options)", self._path, len(self._protocol.options))

    async def _launch(self) -> tuple[asyncio.SubprocessTransport, chess.engine.UciProtocol]:
        transport, protocol = await chess.engine.popen_uci([self._path, *self._args])
        try:
            await protocol.ping()
        except BaseException:
            transport.close()
            raise
        return transport, protocol

    async def stop(self) -> None:
        transport, protocol = self._transport, self._protocol
        self._transport = self._protocol = None
        if protocol is None:
            return
        if not protocol.returncode.done():
            try:
                await asyncio.wait_for(protocol.quit(), timeout=STOP_GRACE)
            except asyncio.TimeoutError:
                logger.warning("Engine ignored quit, killing it")
                transport.kill()
                await protocol.returncode
        transport.close()
        if self._search is not None:
            search = self._search
            search._deliver(EngineCrashedError("Engine session stopped"))
            self._release(search)

    # --- Commands ---

    async def isready(self) -> None:
        self._ensure_idle()
        try:
            await asyncio.wait_for(self._protocol.ping(), timeout=self._startup_timeout)
        except asyncio.TimeoutError:
            logger.error("Engine did not answer isready, terminating")
            await self.stop()
            raise EngineCrashedError("Engine did not answer isready") from None
        except chess.engine.EngineTerminatedError as e:
            raise EngineCrashedError(str(e)) from e

    async def new_game(self) -> None:
        self._ensure_idle()
        self._send("ucinewgame")
        await self.isready()

    async def set_option(self, name: str, value: object) -> None:
        self._ensure_idle()
        if name not in self._protocol.options:
            logger.debug("Engine does not advertise option %s", name)
        # Raw setoption: python-chess's configure() refuses MultiPV
        self._send(setoption_command(name, value))

    async def configure(self, policy: PlayPolicy) -> None:
        for name, value in engine_options(policy, self._max_elo):
            await self.set_option(name, value)
        await self.isready()

    async def search(
        self, fen: str, depth: int | None = None, movetime: int | None = None,
    ) -> SearchHandle:
        """Load a position and start searching it.

        Raises ConcurrentSearchError if the previous search has not
        delivered its bestmove yet.
        """
        self._ensure_idle()
        command = go_command(depth=depth, movetime=movetime)
        if movetime is not None:
            timeout = max(2 * movetime / 1000, MIN_SEARCH_TIMEOUT)
        else:
            timeout = self._search_timeout
        handle = SearchHandle(self, next(self._counter), timeout)
        self._search = handle

        task = asyncio.create_task(self._protocol.communicate(
            lambda engine: _SearchCommand(engine, handle, fen, command)
        ))
        task.add_done_callback(_discard_result)
        await asyncio.wait({handle._started, task}, return_when=asyncio.FIRST_COMPLETED)
        if not handle._started.done():
            self._release(handle)
            exc = task.exception()
            if isinstance(exc, chess.engine.EngineTerminatedError):
                raise EngineCrashedError(str(exc)) from exc
            raise EngineProtocolError(f"Search did not start: {exc}") from exc
        logger.debug("Search %d started: %s", handle.search_id, command)
        return handle

    async def cancel(self) -> None:
        if self._search is not None:
            await self._search.cancel()

    # --- Internals ---

    def _ensure_alive(self) -> None:
        if self._protocol is None:
            raise EngineCrashedError("Engine not started. Call start() first.")
        if self._protocol.returncode.done():
            raise EngineCrashedError(
                f"Engine process is gone (exit code {self._protocol.returncode.result()})"
            )

    def _ensure_idle(self) -> None:
        self._ensure_alive()
        if self._search is not None:
            raise ConcurrentSearchError(
                f"Search {self._search.search_id} is still in progress"
            )

    def _send(self, line: str) -> None:
        self._ensure_alive()
        self._protocol.send_line(line)

    def _release(self, handle: SearchHandle) -> None:
        if self._search is handle:
            self._search = None
        handle._released.set()

    async def _drain(self, handle: SearchHandle) -> None:
        """Stop a failed search and wait until the engine is quiet again.

        The route is released by the stale bestmove or by the readyok
        that answers the isready sent after stop. An engine that sends
        neither is treated as hung and killed.
        """
        if handle.released:
            return
        handle._command.drain()
        try:
            await asyncio.wait_for(handle._released.wait(), timeout=STOP_GRACE)
        except asyncio.TimeoutError:
            logger.error("Engine unresponsive after stop, terminating")
            self._release(handle)
            await self.stop()
            raise EngineCrashedError("Engine stopped responding") from None
