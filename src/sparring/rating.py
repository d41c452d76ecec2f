"""Player rating updates with streak-sensitive adjustments."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

from sparring.levels import MAX_RATING, MIN_RATING

Outcome = Literal["win", "loss", "draw"]

DEFAULT_RATING = 100
LOSS_PENALTY = 8
LOSS_STREAK_LIMIT = 3       # consecutive losses that trigger an extra penalty
WIN_BONUSES = (8, 16, 32, 64)


@dataclass(frozen=True)
class RatingState:
    current_rating: int = DEFAULT_RATING
    total_games: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    win_streak: int = 0
    loss_streak: int = 0
    consecutive_losses: int = 0

    @property
    def win_rate(self) -> float:
        if self.total_games == 0:
            return 0.0
        return self.wins / self.total_games * 100


def _clamp(rating: int, min_rating: int, max_rating: int) -> int:
    return max(min_rating, min(rating, max_rating))


def win_bonus(win_streak: int) -> int:
    """Rating gained for a win that extends the streak to win_streak."""
    index = max(1, min(win_streak, len(WIN_BONUSES))) - 1
    return WIN_BONUSES[index]


def apply_outcome(
    state: RatingState,
    outcome: Outcome,
    min_rating: int = MIN_RATING,
    max_rating: int = MAX_RATING,
) -> RatingState:
    """Return the rating state after one more game.

    Wins pay 8/16/32/64 as the streak grows. Every loss costs 8, and the
    third consecutive loss costs another 8 and resets the counter.
    """
    total = state.total_games + 1
    if outcome == "win":
        streak = state.win_streak + 1
        return replace(
            state,
            current_rating=_clamp(state.current_rating + win_bonus(streak), min_rating, max_rating),
            total_games=total,
            wins=state.wins + 1,
            win_streak=streak,
            loss_streak=0,
            consecutive_losses=0,
        )
    if outcome == "loss":
        rating = _clamp(state.current_rating - LOSS_PENALTY, min_rating, max_rating)
        consecutive = state.consecutive_losses + 1
        if consecutive >= LOSS_STREAK_LIMIT:
            rating = max(rating - LOSS_PENALTY, min_rating)
            consecutive = 0
        return replace(
            state,
            current_rating=rating,
            total_games=total,
            losses=state.losses + 1,
            win_streak=0,
            loss_streak=state.loss_streak + 1,
            consecutive_losses=consecutive,
        )
    if outcome == "draw":
        return replace(
            state,
            current_rating=_clamp(state.current_rating, min_rating, max_rating),
            total_games=total,
            draws=state.draws + 1,
            win_streak=0,
            loss_streak=0,
            consecutive_losses=0,
        )
    raise ValueError(f"Unknown outcome: {outcome!r}")
