"""End-to-end tests for the Companion facade using the fake engine process."""

import asyncio
import random

import pytest

from conftest import STARTING_FEN, make_session
from sparring.companion import Companion
from sparring.config import Settings
from sparring.opponent import MoveTier
from sparring.stats import StatsStore


@pytest.fixture
async def companion():
    engine = make_session()
    await engine.start()
    stats = StatsStore(":memory:")
    await stats.start()
    c = Companion(engine, stats=stats, settings=Settings(_env_file=None, thinking_delay=False),
                  rng=random.Random(3))
    yield c
    await stats.close()
    await engine.stop()


async def test_analyze_position(companion):
    result = await companion.analyze_position(STARTING_FEN, depth=1)
    assert len(result.pv_lines) == 4
    assert result.pv_lines[0].moves == ("a3", "a5")
    assert [line.evaluation for line in result.pv_lines] == [50, 40, 30, 20]
    assert result.evaluation == 50
    assert result.best_move == "a2a3"


async def test_analyze_after_mistake_configuration(companion):
    await companion.engine.configure(companion.profile_for(1).policy)
    result = await companion.analyze_position(STARTING_FEN, depth=1)
    assert result.pv[0] == "a3"


async def test_analyze_after_elo_move_runs_full_strength(companion, monkeypatch):
    await companion.get_ai_move(STARTING_FEN, 15)
    sent = []
    set_option = companion.engine.set_option

    async def recording_set_option(name, value):
        sent.append((name, value))
        await set_option(name, value)

    monkeypatch.setattr(companion.engine, "set_option", recording_set_option)
    result = await companion.analyze_position(STARTING_FEN, depth=1)
    assert sent[0] == ("UCI_LimitStrength", False)
    assert sent[-1] == ("MultiPV", 1)
    assert result.evaluation == 50


async def test_get_ai_move_at_top_level(companion):
    found = []
    decision = await companion.get_ai_move(STARTING_FEN, 20, on_move_found=found.append)
    assert decision.uci == "a2a3"
    assert decision.san == "a3"
    assert decision.tier == MoveTier.BEST
    assert found == ["a2a3"]


async def test_get_ai_move_by_rating(companion):
    decision = await companion.get_ai_move(STARTING_FEN, 100, by="rating")
    assert decision.level == 1
    assert decision.engine_move == "a2a3"


async def test_low_level_move_is_legal(companion):
    for _ in range(5):
        decision = await companion.get_ai_move(STARTING_FEN, 1)
        assert decision.san


async def test_best_move(companion):
    assert await companion.best_move(STARTING_FEN) == ("a2a3", 50)


async def test_profile_selector(companion):
    assert companion.profile_for(2000, by="rating").level == 20
    with pytest.raises(ValueError):
        companion.profile_for(5, by="elo")


async def test_record_game_updates_rating(companion):
    player, record = await companion.record_game(
        "win", moves=["e4", "e5"], accuracy=82.5, player_color="white", ai_level=1,
    )
    assert player.current_rating == 108
    assert player.win_streak == 1
    assert player.best_accuracy == 82.5
    assert player.average_accuracy == pytest.approx(82.5)
    assert record.rating_before == 100
    assert record.rating_after == 108
    assert record.id is not None

    stored = await companion.stats.get_player_stats()
    assert stored.current_rating == 108
    assert stored.total_games == 1


async def test_record_game_without_store():
    c = Companion(make_session(), settings=Settings(_env_file=None))
    with pytest.raises(RuntimeError):
        await c.record_game("draw")


async def test_concurrent_records_are_serialized(companion):
    results = await asyncio.gather(
        companion.record_game("win", accuracy=60.0),
        companion.record_game("win", accuracy=80.0),
    )
    assert sorted(record.rating_before for _, record in results) == [100, 108]

    stored = await companion.stats.get_player_stats()
    assert stored.total_games == 2
    assert stored.wins == 2
    assert stored.current_rating == 124
    assert stored.average_accuracy == pytest.approx(70.0)
    assert len(await companion.stats.get_games()) == 2
