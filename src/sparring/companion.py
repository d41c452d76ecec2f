"""The companion facade: engine moves, analysis and rating in one place.

One Companion owns one EngineSession, so it serves one game at a time.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Literal

from sparring.analysis import AnalysisAggregator, SearchResult, UpdateCallback
from sparring.config import Settings
from sparring.engine import EngineSession
from sparring.levels import LevelProfile, get_level_profile, level_for
from sparring.opponent import MoveDecision, play_move
from sparring.rating import Outcome, apply_outcome
from sparring.stats import GameRecord, PlayerStats, StatsStore

logger = logging.getLogger(__name__)

MoveCallback = Callable[[str], Awaitable[None] | None]


class Companion:
    def __init__(
        self,
        engine: EngineSession,
        stats: StatsStore | None = None,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ):
        settings = settings or Settings()
        self._engine = engine
        self._stats = stats
        self._settings = settings
        self._rng = rng or random.Random()
        self._record_lock = asyncio.Lock()
        self._analysis = AnalysisAggregator(
            engine,
            multipv=settings.analysis_multipv,
            throttle_ms=settings.analysis_throttle_ms,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Companion:
        engine = EngineSession(
            engine_path=settings.engine_path,
            engine_args=settings.engine_args,
            startup_timeout=settings.startup_timeout,
            search_timeout=settings.search_timeout,
            max_elo=settings.max_uci_elo,
        )
        stats = StatsStore(settings.stats_db_path, default_rating=settings.default_rating)
        return cls(engine, stats=stats, settings=settings)

    @property
    def engine(self) -> EngineSession:
        return self._engine

    @property
    def stats(self) -> StatsStore | None:
        return self._stats

    def level_for(self, rating: float) -> int:
        return level_for(rating, self._settings.min_rating, self._settings.max_rating)

    def profile_for(self, value: float, by: Literal["level", "rating"] = "level") -> LevelProfile:
        if by == "rating":
            return get_level_profile(self.level_for(value))
        if by == "level":
            return get_level_profile(value)
        raise ValueError(f"Unknown profile selector: {by!r}")

    async def get_ai_move(
        self,
        fen: str,
        level_or_rating: float,
        on_move_found: MoveCallback | None = None,
        by: Literal["level", "rating"] = "level",
    ) -> MoveDecision:
        profile = self.profile_for(level_or_rating, by=by)
        decision = await play_move(
            self._engine, fen, profile,
            rng=self._rng, thinking_delay=self._settings.thinking_delay,
        )
        if on_move_found is not None:
            ret = on_move_found(decision.uci)
            if inspect.isawaitable(ret):
                await ret
        return decision

    async def analyze_position(
        self,
        fen: str,
        depth: int | None = None,
        on_update: UpdateCallback | None = None,
    ) -> SearchResult:
        depth = depth or self._settings.default_analysis_depth
        return await self._analysis.analyze(fen, depth=depth, on_update=on_update)

    async def best_move(self, fen: str, depth: int = 5) -> tuple[str | None, int]:
        """Full-strength single-line search: (bestmove, White-relative eval)."""
        result = await self._analysis.analyze(fen, depth=depth, multipv=1)
        return result.best_move, result.evaluation

    async def cancel(self) -> None:
        await self._analysis.cancel()
        await self._engine.cancel()

    async def record_game(
        self,
        outcome: Outcome,
        moves: list[str] | None = None,
        pgn: str = "",
        accuracy: float = 0.0,
        blunders: int = 0,
        mistakes: int = 0,
        inaccuracies: int = 0,
        player_color: str | None = None,
        ai_level: int | None = None,
    ) -> tuple[PlayerStats, GameRecord]:
        """Apply a finished game to the player's rating and persist both.

        Calls are serialized so each game sees the rating left by the one
        before it.
        """
        if self._stats is None:
            raise RuntimeError("No stats store configured")
        async with self._record_lock:
            before = await self._stats.get_player_stats()
            state = apply_outcome(
                before.rating_state, outcome,
                min_rating=self._settings.min_rating, max_rating=self._settings.max_rating,
            )
            after = before.with_rating(state)
            after.best_accuracy = max(before.best_accuracy, accuracy)

            record = GameRecord(
                result=outcome,
                moves=list(moves or []),
                pgn=pgn,
                accuracy=accuracy,
                blunders=blunders,
                mistakes=mistakes,
                inaccuracies=inaccuracies,
                rating_before=before.current_rating,
                rating_after=after.current_rating,
                win_streak=after.win_streak,
                loss_streak=after.loss_streak,
                player_color=player_color,
                ai_level=ai_level,
            )
            after = await self._stats.record_game(record, after)
        logger.info(
            "Recorded %s: rating %d -> %d", outcome, before.current_rating, after.current_rating,
        )
        return after, record
