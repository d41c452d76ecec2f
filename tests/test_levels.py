import pytest

from sparring.levels import (
    LEVELS,
    MAX_RATING,
    MIN_RATING,
    EloPolicy,
    LevelProfile,
    MistakePolicy,
    get_level_profile,
    level_for,
    policy_for_rating,
)


def test_all_levels_are_profiles():
    for profile in LEVELS:
        assert isinstance(profile, LevelProfile)


def test_levels_sorted_and_unique():
    levels = [p.level for p in LEVELS]
    assert levels == sorted(set(levels))
    assert levels == list(range(1, 21))


def test_low_levels_make_mistakes_high_levels_limit_elo():
    assert all(isinstance(p.policy, MistakePolicy) for p in LEVELS[:12])
    assert all(isinstance(p.policy, EloPolicy) for p in LEVELS[12:])


def test_mistake_probabilities_in_range():
    for profile in LEVELS:
        policy = profile.policy
        if not isinstance(policy, MistakePolicy):
            continue
        probs = (policy.best_prob, policy.second_prob, policy.third_prob, policy.random_prob)
        assert all(0.0 <= p <= 1.0 for p in probs)
        assert sum(probs) == pytest.approx(1.0, abs=0.01)
        assert policy.time_min_ms <= policy.time_max_ms


def test_elo_targets_increase_with_level():
    targets = [p.policy.target_rating for p in LEVELS if isinstance(p.policy, EloPolicy)]
    assert targets == sorted(targets)


def test_get_level_profile_known():
    p = get_level_profile(13)
    assert p.display_name == "Tiger"
    assert p.policy == EloPolicy(target_rating=1400, time_ms=2000)


def test_get_level_profile_clamps():
    assert get_level_profile(0).level == 1
    assert get_level_profile(-5).level == 1
    assert get_level_profile(99).level == 20
    assert get_level_profile(7.9).level == 7


# ---------------------------------------------------------------------------
# level_for
# ---------------------------------------------------------------------------


class TestLevelFor:
    @pytest.mark.parametrize("rating", [-1000, 0, MIN_RATING - 1, MIN_RATING])
    def test_at_or_below_min_is_level_one(self, rating):
        assert level_for(rating) == 1

    @pytest.mark.parametrize("rating", [MAX_RATING, MAX_RATING + 1, 10_000])
    def test_at_or_above_max_is_top_level(self, rating):
        assert level_for(rating) == len(LEVELS)

    def test_monotonic(self):
        previous = 0
        for rating in range(0, 2100, 7):
            level = level_for(rating)
            assert level >= previous
            previous = level

    def test_default_rating_is_level_one(self):
        assert level_for(100) == 1

    def test_interpolation(self):
        # (1025 - 50) / 1950 = 0.5 -> 1 + floor(9.5)
        assert level_for(1025) == 10

    def test_custom_range(self):
        assert level_for(500, min_rating=0, max_rating=1000) == 1 + int(0.5 * 19)

    def test_policy_for_rating(self):
        assert isinstance(policy_for_rating(100), MistakePolicy)
        assert isinstance(policy_for_rating(2000), EloPolicy)
