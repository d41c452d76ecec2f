"""Multi-PV position analysis.

Drives one depth-bounded search, keeps the latest line reported for each
multipv index, and turns engine scores (always relative to the side to
move) into White-relative evaluations. Mate scores become +/-MATE_SCORE.
"""

from __future__ import annotations

import enum
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import chess

from sparring.engine import ConcurrentSearchError, EngineError, EngineSession, SearchHandle
from sparring.rules import load_board, replay_pv, side_to_move, to_san
from sparring.uci import BestMove, SearchInfo

logger = logging.getLogger(__name__)

MATE_SCORE = 32000
ANALYSIS_MULTIPV = 4
THROTTLE_MS = 100


class AnalysisPhase(enum.Enum):
    IDLE = "idle"
    CONFIGURING = "configuring"
    SEARCHING = "searching"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class PvLine:
    evaluation: int             # White-relative centipawns, mate = +/-MATE_SCORE
    moves: tuple[str, ...]      # SAN


@dataclass(frozen=True)
class SearchResult:
    evaluation: int
    best_move: str | None       # UCI, from the bestmove line when available
    pv: tuple[str, ...]         # SAN of the best line
    pv_lines: tuple[PvLine, ...]
    mate_in: int | None         # moves to mate; > 0 White mates, < 0 Black mates
    mate_for: str | None        # "white" | "black"

    def to_dict(self) -> dict:
        return {
            "evaluation": self.evaluation,
            "best_move": self.best_move,
            "pv": list(self.pv),
            "pv_lines": [
                {"evaluation": line.evaluation, "moves": list(line.moves)}
                for line in self.pv_lines
            ],
            "mate_in": self.mate_in,
            "mate_for": self.mate_for,
        }


@dataclass
class AnalysisState:
    fen: str
    perspective: str            # side to move; its scores get flipped for Black
    pv_lines: dict[int, PvLine] = field(default_factory=dict)
    best_mate_in: int | None = None
    mate_for: str | None = None
    last_emit: float | None = None


UpdateCallback = Callable[[SearchResult], Awaitable[None] | None]


def _terminal_result(board: chess.Board) -> SearchResult | None:
    """Result for a position with no legal moves, or None if play goes on."""
    if board.is_checkmate():
        winner = "black" if board.turn == chess.WHITE else "white"
        return SearchResult(
            evaluation=MATE_SCORE if winner == "white" else -MATE_SCORE,
            best_move=None,
            pv=(),
            pv_lines=(),
            mate_in=0,
            mate_for=winner,
        )
    if board.is_stalemate():
        return SearchResult(0, None, (), (), None, None)
    return None


class AnalysisAggregator:
    """Runs analysis searches on an EngineSession, one at a time."""

    def __init__(
        self,
        session: EngineSession,
        multipv: int = ANALYSIS_MULTIPV,
        throttle_ms: int = THROTTLE_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session = session
        self._multipv = multipv
        self._throttle = throttle_ms / 1000
        self._clock = clock
        self._state: AnalysisState | None = None
        self._handle: SearchHandle | None = None
        self._width = multipv
        self.phase = AnalysisPhase.IDLE

    async def analyze(
        self,
        fen: str,
        depth: int = 15,
        on_update: UpdateCallback | None = None,
        multipv: int | None = None,
    ) -> SearchResult:
        board = load_board(fen)
        terminal = _terminal_result(board)
        if terminal is not None:
            logger.debug("Skipping engine for terminal position %s", fen)
            return terminal
        if self.phase is not AnalysisPhase.IDLE:
            raise ConcurrentSearchError("An analysis is already running")

        self._width = multipv or self._multipv
        self.phase = AnalysisPhase.CONFIGURING
        try:
            # Analysis always runs at full strength
            await self._session.set_option("UCI_LimitStrength", False)
            await self._session.set_option("MultiPV", self._width)
            await self._session.isready()
            self._handle = await self._session.search(fen, depth=depth)
            self._state = AnalysisState(fen=board.fen(), perspective=side_to_move(fen))
            self.phase = AnalysisPhase.SEARCHING

            result = None
            async for event in self._handle.events():
                if isinstance(event, SearchInfo):
                    await self._on_info(event, on_update)
                elif isinstance(event, BestMove):
                    self.phase = AnalysisPhase.FINALIZING
                    result = self._finalize(event)
            return result
        finally:
            await self._reset_width()
            self._state = None
            self._handle = None
            self.phase = AnalysisPhase.IDLE

    async def cancel(self) -> None:
        if self._handle is not None:
            await self._handle.cancel()

    async def _reset_width(self) -> None:
        """Put MultiPV back to 1 unless the session is dead or still searching."""
        if not self._session.alive or self._session.busy:
            return
        try:
            await self._session.set_option("MultiPV", 1)
        except EngineError as e:
            logger.warning("Could not reset MultiPV: %s", e)

    async def _on_info(self, info: SearchInfo, on_update: UpdateCallback | None) -> None:
        state = self._state
        if info.multipv > self._width:
            return

        if info.score_mate is not None:
            raw = MATE_SCORE if info.score_mate > 0 else -MATE_SCORE
        else:
            raw = info.score_cp or 0
        sign = -1 if state.perspective == "black" else 1
        evaluation = raw * sign

        state.pv_lines[info.multipv] = PvLine(evaluation, tuple(replay_pv(state.fen, info.pv)))
        if info.multipv == 1:
            if info.score_mate is not None:
                state.best_mate_in = info.score_mate * sign
                state.mate_for = "white" if evaluation > 0 else "black"
            else:
                state.best_mate_in = None
                state.mate_for = None

        if on_update is None or self._handle.cancelled:
            return
        now = self._clock()
        if state.last_emit is not None and now - state.last_emit < self._throttle:
            return
        state.last_emit = now
        ret = on_update(self._snapshot())
        if inspect.isawaitable(ret):
            await ret

    def _snapshot(self) -> SearchResult:
        state = self._state
        lines = tuple(state.pv_lines[k] for k in sorted(state.pv_lines))
        best = state.pv_lines.get(1)
        if best is None and lines:
            best = max(lines, key=lambda line: line.evaluation)
        pv = best.moves if best else ()
        return SearchResult(
            evaluation=best.evaluation if best else 0,
            best_move=None,
            pv=pv,
            pv_lines=lines,
            mate_in=state.best_mate_in,
            mate_for=state.mate_for,
        )

    def _finalize(self, bestmove: BestMove) -> SearchResult:
        snapshot = self._snapshot()
        pv, pv_lines = snapshot.pv, snapshot.pv_lines
        if not pv_lines and bestmove.move is not None:
            fallback = (to_san(self._state.fen, bestmove.move) or bestmove.move,)
            pv = fallback
            pv_lines = (PvLine(snapshot.evaluation, fallback),)
        return SearchResult(
            evaluation=snapshot.evaluation,
            best_move=bestmove.move,
            pv=pv,
            pv_lines=pv_lines,
            mate_in=snapshot.mate_in,
            mate_for=snapshot.mate_for,
        )
