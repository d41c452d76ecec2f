"""Difficulty levels and the play policies behind them.

Levels 1-12 play realistic mistakes on top of full-strength search;
levels 13-20 ask the engine itself to limit its strength.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class MistakePolicy:
    multipv: int
    best_prob: float
    second_prob: float
    third_prob: float
    random_prob: float
    depth_cap: int
    time_min_ms: int
    time_max_ms: int

    kind = "mistake"


@dataclass(frozen=True)
class EloPolicy:
    target_rating: int
    time_ms: int

    kind = "elo"


PlayPolicy = MistakePolicy | EloPolicy


@dataclass(frozen=True)
class LevelProfile:
    level: int
    description: str
    display_name: str
    policy: PlayPolicy


LEVELS: tuple[LevelProfile, ...] = (
    LevelProfile(1, "Beginner I (~200 Elo)", "Chick",
                 MistakePolicy(12, 0.30, 0.25, 0.25, 0.20, 2, 200, 400)),
    LevelProfile(2, "Beginner II (~300 Elo)", "Mouse",
                 MistakePolicy(12, 0.40, 0.30, 0.20, 0.10, 2, 300, 500)),
    LevelProfile(3, "Beginner III (~400 Elo)", "Rabbit",
                 MistakePolicy(12, 0.50, 0.30, 0.15, 0.05, 3, 400, 600)),
    LevelProfile(4, "Beginner IV (~500 Elo)", "Fox",
                 MistakePolicy(12, 0.60, 0.25, 0.12, 0.03, 3, 500, 700)),
    LevelProfile(5, "Novice I (~600 Elo)", "Dog",
                 MistakePolicy(10, 0.70, 0.20, 0.08, 0.02, 4, 600, 800)),
    LevelProfile(6, "Novice II (~700 Elo)", "Goat",
                 MistakePolicy(10, 0.75, 0.18, 0.06, 0.01, 4, 700, 900)),
    LevelProfile(7, "Intermediate I (~800 Elo)", "Sheep",
                 MistakePolicy(8, 0.80, 0.15, 0.04, 0.01, 5, 800, 1000)),
    LevelProfile(8, "Intermediate II (~900 Elo)", "Pig",
                 MistakePolicy(8, 0.85, 0.12, 0.03, 0.00, 5, 900, 1100)),
    LevelProfile(9, "Intermediate III (~1000 Elo)", "Deer",
                 MistakePolicy(8, 0.75, 0.22, 0.03, 0.00, 2, 400, 600)),
    LevelProfile(10, "Skilled I (~1100 Elo)", "Boar",
                 MistakePolicy(6, 0.80, 0.18, 0.02, 0.00, 3, 450, 650)),
    LevelProfile(11, "Skilled II (~1200 Elo)", "Leopard",
                 MistakePolicy(6, 0.85, 0.13, 0.02, 0.00, 3, 500, 700)),
    LevelProfile(12, "Advanced (~1300 Elo)", "Panther",
                 MistakePolicy(6, 0.90, 0.09, 0.01, 0.00, 3, 550, 800)),
    LevelProfile(13, "Club Beginner (~1400 Elo)", "Tiger", EloPolicy(1400, 2000)),
    LevelProfile(14, "Club Novice (~1500 Elo)", "Lion", EloPolicy(1500, 2500)),
    LevelProfile(15, "Club Intermediate (~1600 Elo)", "Horse", EloPolicy(1600, 3000)),
    LevelProfile(16, "Strong Club (~1700 Elo)", "Buffalo", EloPolicy(1700, 3500)),
    LevelProfile(17, "Expert (~1800 Elo)", "Rhino", EloPolicy(1800, 4000)),
    LevelProfile(18, "Candidate Master (~1900 Elo)", "Hippo", EloPolicy(1900, 4500)),
    LevelProfile(19, "Master (~2000 Elo)", "Giraffe", EloPolicy(2000, 5000)),
    LevelProfile(20, "Strong Master (~2100+ Elo)", "Elephant", EloPolicy(2100, 6000)),
)

MIN_RATING = 50
MAX_RATING = 2000


def get_level_profile(level: float) -> LevelProfile:
    """Look up a level profile, clamping out-of-range levels to the table."""
    clamped = max(1, min(len(LEVELS), math.floor(level)))
    return LEVELS[clamped - 1]


def level_for(
    rating: float, min_rating: int = MIN_RATING, max_rating: int = MAX_RATING,
) -> int:
    """Map a player rating to the level whose bot should face them.

    Ratings interpolate linearly between min_rating (level 1) and
    max_rating (the top level); anything outside the range clamps.
    """
    span = max_rating - min_rating
    fraction = (rating - min_rating) / span if span > 0 else 1.0
    fraction = max(0.0, min(1.0, fraction))
    return 1 + math.floor(fraction * (len(LEVELS) - 1))


def policy_for_rating(rating: float) -> PlayPolicy:
    return get_level_profile(level_for(rating)).policy
