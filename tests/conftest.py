import sys
from pathlib import Path

import pytest

from sparring.engine import EngineSession

FAKE_ENGINE = str(Path(__file__).with_name("fake_uci_engine.py"))

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def fake_engine_args(*flags: str) -> list[str]:
    return [FAKE_ENGINE, *flags]


def make_session(*flags: str, **kwargs) -> EngineSession:
    kwargs.setdefault("startup_timeout", 5.0)
    return EngineSession(
        engine_path=sys.executable, engine_args=fake_engine_args(*flags), **kwargs
    )


@pytest.fixture
async def session():
    s = make_session()
    await s.start()
    yield s
    await s.stop()
