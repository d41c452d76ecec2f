"""Opponent move selection.

Configures the engine for a level's play policy, waits a human-looking
thinking delay, runs the search, and for mistake policies rolls the dice
on whether to play the engine's move or something worse.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from dataclasses import dataclass

from sparring.engine import EngineProtocolError, EngineSession
from sparring.levels import EloPolicy, LevelProfile, MistakePolicy, PlayPolicy
from sparring.rules import legal_moves as list_legal_moves
from sparring.rules import load_board, to_san

logger = logging.getLogger(__name__)

# Thinking delays simulate human latency; they sit between configuration
# and the go command and never change engine settings.
MISTAKE_DELAY_MIN_MS = 500
MISTAKE_DELAY_MAX_MS = 1500
ELO_DELAY_MS = 200


class MoveTier(enum.Enum):
    BEST = "best"
    SECOND = "second"
    THIRD = "third"
    RANDOM = "random"


@dataclass
class MoveDecision:
    uci: str
    san: str
    engine_move: str
    tier: MoveTier
    level: int


def search_bounds(policy: PlayPolicy, rng: random.Random | None = None) -> tuple[int | None, int | None]:
    """(depth, movetime_ms) for the go command."""
    rng = rng or random
    if isinstance(policy, MistakePolicy):
        return policy.depth_cap, rng.randint(policy.time_min_ms, policy.time_max_ms)
    if isinstance(policy, EloPolicy):
        return None, policy.time_ms
    raise TypeError(f"Unknown play policy: {policy!r}")


def thinking_delay_ms(policy: PlayPolicy, rng: random.Random | None = None) -> float:
    rng = rng or random
    if isinstance(policy, MistakePolicy):
        return rng.uniform(MISTAKE_DELAY_MIN_MS, MISTAKE_DELAY_MAX_MS)
    if isinstance(policy, EloPolicy):
        return ELO_DELAY_MS
    raise TypeError(f"Unknown play policy: {policy!r}")


def choose_tier(policy: MistakePolicy, roll: float) -> MoveTier:
    """Map a uniform roll in [0, 1) onto cumulative tier thresholds.

    Probability mass left over when the four weights sum below 1 falls
    into the random tier.
    """
    threshold = policy.best_prob
    if roll < threshold:
        return MoveTier.BEST
    threshold += policy.second_prob
    if roll < threshold:
        return MoveTier.SECOND
    threshold += policy.third_prob
    if roll < threshold:
        return MoveTier.THIRD
    return MoveTier.RANDOM


def _pick(
    policy: PlayPolicy,
    best_move: str,
    legal_moves: list[str],
    rng: random.Random,
) -> tuple[str, MoveTier]:
    if isinstance(policy, EloPolicy):
        return best_move, MoveTier.BEST
    if not isinstance(policy, MistakePolicy):
        raise TypeError(f"Unknown play policy: {policy!r}")
    if len(legal_moves) < 2:
        return best_move, MoveTier.BEST

    tier = choose_tier(policy, rng.random())
    if tier is MoveTier.BEST:
        return best_move, tier
    # Second and third tiers stand in for the engine's ranked alternatives
    # by sampling the legal moves, exactly like the random tier.
    alternatives = [m for m in legal_moves if m != best_move] or legal_moves
    return rng.choice(alternatives), tier


def select_move(
    policy: PlayPolicy,
    best_move: str,
    legal_moves: list[str],
    fen: str,
    rng: random.Random | None = None,
) -> str:
    """Decide which move to actually play given the engine's choice."""
    move, tier = _pick(policy, best_move, legal_moves, rng or random)
    if tier is not MoveTier.BEST:
        logger.debug("%s tier in %s: %s -> %s", tier.value, fen, best_move, move)
    return move


async def play_move(
    session: EngineSession,
    fen: str,
    profile: LevelProfile,
    rng: random.Random | None = None,
    thinking_delay: bool = True,
) -> MoveDecision:
    """Search fen with the level's policy and return the move to play.

    Raises ValueError when the position has no legal moves; no move is
    ever invented when the engine fails.
    """
    rng = rng or random
    policy = profile.policy
    board = load_board(fen)
    legal = list_legal_moves(board.fen())
    if not legal:
        raise ValueError(f"No legal moves in {fen}")

    await session.configure(policy)
    depth, movetime = search_bounds(policy, rng)
    if thinking_delay:
        delay = thinking_delay_ms(policy, rng)
        logger.debug("Thinking delay %.0fms (level %d)", delay, profile.level)
        await asyncio.sleep(delay / 1000)

    handle = await session.search(board.fen(), depth=depth, movetime=movetime)
    best = await handle.result()
    if best.move is None:
        raise EngineProtocolError(f"Engine found no move in {fen}")
    if best.move not in legal:
        raise EngineProtocolError(f"Engine returned illegal move {best.move}")

    move, tier = _pick(policy, best.move, legal, rng)
    logger.info(
        "Level %d (%s) plays %s [%s, engine %s]",
        profile.level, profile.display_name, move, tier.value, best.move,
    )
    return MoveDecision(
        uci=move,
        san=to_san(board.fen(), move),
        engine_move=best.move,
        tier=tier,
        level=profile.level,
    )
