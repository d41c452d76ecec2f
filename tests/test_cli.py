import json
import sys

import pytest

from conftest import FAKE_ENGINE, STARTING_FEN
from sparring import cli


@pytest.fixture(autouse=True)
def fake_engine_env(monkeypatch):
    monkeypatch.setenv("SPARRING_ENGINE_PATH", sys.executable)
    monkeypatch.setenv("SPARRING_ENGINE_ARGS", json.dumps([FAKE_ENGINE]))


def _run(monkeypatch, capsys, *argv):
    monkeypatch.setattr(sys, "argv", ["sparring", *argv])
    cli.main()
    return json.loads(capsys.readouterr().out)


def test_level(monkeypatch, capsys):
    data = _run(monkeypatch, capsys, "level", "2000")
    assert data["level"] == 20
    assert data["kind"] == "elo"


def test_analyze(monkeypatch, capsys):
    data = _run(monkeypatch, capsys, "analyze", STARTING_FEN, "--depth", "1")
    assert data["best_move"] == "a2a3"
    assert len(data["pv_lines"]) == 4


def test_move(monkeypatch, capsys):
    data = _run(monkeypatch, capsys, "--no-delay", "move", STARTING_FEN, "--level", "20")
    assert data["uci"] == "a2a3"


def test_invalid_fen_exits(monkeypatch, capsys):
    monkeypatch.setattr(sys, "argv", ["sparring", "analyze", "bogus"])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 1
    assert "Invalid FEN" in capsys.readouterr().err
