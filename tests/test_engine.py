"""Tests for EngineSession against the scripted fake engine process."""

import pytest

from conftest import STARTING_FEN, make_session
from sparring.engine import (
    ConcurrentSearchError,
    EngineCrashedError,
    EngineError,
    EngineProtocolError,
    EngineSession,
    EngineStartupError,
    engine_options,
)
from sparring.levels import EloPolicy, MistakePolicy, get_level_profile
from sparring.uci import BestMove, SearchInfo


class TestEngineOptions:
    def test_mistake_policy(self):
        policy = MistakePolicy(12, 0.5, 0.3, 0.15, 0.05, 3, 400, 600)
        assert engine_options(policy) == [
            ("UCI_LimitStrength", False),
            ("MultiPV", 12),
            ("Threads", 1),
            ("Hash", 1),
        ]

    def test_elo_policy_limit_strength_first(self):
        names = [name for name, _ in engine_options(EloPolicy(1600, 3000))]
        assert names.index("UCI_LimitStrength") < names.index("UCI_Elo")

    def test_elo_clamped_to_engine_max(self):
        options = dict(engine_options(EloPolicy(4000, 3000), max_elo=2850))
        assert options["UCI_Elo"] == 2850
        assert options["UCI_LimitStrength"] is True
        assert options["MultiPV"] == 1

    def test_unknown_policy(self):
        with pytest.raises(TypeError):
            engine_options("strong")


class TestLifecycle:
    async def test_handshake_collects_options(self, session):
        assert session.alive
        assert not session.busy
        assert {"MultiPV", "UCI_LimitStrength", "UCI_Elo"} <= session.options

    async def test_silent_engine_fails_startup(self):
        s = make_session("--silent", startup_timeout=0.5)
        with pytest.raises(EngineStartupError):
            await s.start()
        assert not s.alive

    async def test_missing_binary(self):
        s = EngineSession(engine_path="/nonexistent/stockfish")
        with pytest.raises(EngineStartupError):
            await s.start()

    async def test_search_before_start(self):
        s = make_session()
        with pytest.raises(EngineError):
            await s.search(STARTING_FEN, depth=1)

    async def test_context_manager(self):
        async with make_session() as s:
            assert s.alive
        assert not s.alive

    async def test_restart(self, session):
        await session.start()
        assert session.alive
        handle = await session.search(STARTING_FEN, depth=1)
        assert (await handle.result()).move == "a2a3"


class TestSearch:
    async def test_bestmove_is_legal(self, session):
        await session.configure(get_level_profile(1).policy)
        handle = await session.search(STARTING_FEN, depth=2, movetime=300)
        best = await handle.result()
        assert best == BestMove(move="a2a3", ponder=None)
        assert not session.busy

    async def test_events_stream_info_then_bestmove(self, session):
        await session.set_option("MultiPV", 3)
        await session.isready()
        handle = await session.search(STARTING_FEN, depth=2)
        events = [event async for event in handle.events()]
        assert len(events) == 7
        assert all(isinstance(e, SearchInfo) for e in events[:-1])
        assert isinstance(events[-1], BestMove)
        assert {e.multipv for e in events[:-1]} == {1, 2, 3}
        assert events[0].pv[0] == "a2a3"

    async def test_sequential_searches(self, session):
        for fen in (STARTING_FEN, "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"):
            handle = await session.search(fen, depth=1)
            best = await handle.result()
            assert best.move is not None
        assert not session.busy

    async def test_no_legal_moves(self, session):
        mated = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"
        handle = await session.search(mated, depth=1)
        assert (await handle.result()).move is None

    async def test_new_game(self, session):
        await session.new_game()
        assert session.alive


class TestConcurrency:
    async def test_second_search_rejected_until_bestmove(self):
        async with make_session("--wait-for-stop") as s:
            handle = await s.search(STARTING_FEN, depth=20)
            with pytest.raises(ConcurrentSearchError):
                await s.search(STARTING_FEN, depth=1)
            with pytest.raises(ConcurrentSearchError):
                await s.set_option("MultiPV", 2)

            await handle.cancel()
            best = await handle.result()
            assert best.move == "a2a3"
            assert handle.cancelled
            assert not s.busy

            again = await s.search(STARTING_FEN, depth=1)
            await s.cancel()
            assert (await again.result()).move == "a2a3"

    async def test_cancel_after_finish_is_noop(self, session):
        handle = await session.search(STARTING_FEN, depth=1)
        await handle.result()
        await handle.cancel()
        assert not handle.cancelled
        assert not session.busy


class TestFailures:
    async def test_crash_during_search(self):
        s = make_session("--crash-on-go")
        await s.start()
        try:
            handle = await s.search(STARTING_FEN, depth=1)
            with pytest.raises(EngineCrashedError):
                await handle.result()
            assert not s.alive
            with pytest.raises(EngineError):
                await s.search(STARTING_FEN, depth=1)
        finally:
            await s.stop()

    async def test_error_line_fails_search_only(self):
        async with make_session("--error-on-go") as s:
            handle = await s.search(STARTING_FEN, depth=1)
            with pytest.raises(EngineProtocolError, match="NNUE"):
                await handle.result()
            assert not s.busy
            assert s.alive
            await s.isready()

    async def test_timeout_drains_and_recovers(self):
        async with make_session("--wait-for-stop") as s:
            handle = await s.search(STARTING_FEN, movetime=100)
            assert handle.timeout == pytest.approx(2.0)
            with pytest.raises(EngineProtocolError, match="timed out"):
                await handle.result()
            assert not s.busy
            assert s.alive

    async def test_stop_during_search_fails_handle(self):
        s = make_session("--wait-for-stop")
        await s.start()
        handle = await s.search(STARTING_FEN, depth=20)
        await s.stop()
        with pytest.raises(EngineCrashedError):
            await handle.result()
        assert not s.busy
        assert not s.alive

    async def test_oversized_output_line(self):
        async with make_session("--long-line") as s:
            handle = await s.search(STARTING_FEN, depth=1)
            assert (await handle.result()).move == "a2a3"
