"""UCI line parsing and command formatting.

Every engine output line maps to at most one event. Lines that carry
nothing the orchestration layer needs (``id``, ``info depth`` without a
PV, ``info string`` chatter) parse to ``None``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

MOVE_PATTERN = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")
MAX_PV_MOVES = 6

_MULTIPV_RE = re.compile(r"\bmultipv (\d+)")
_MATE_RE = re.compile(r"\bscore mate (-?\d+)")
_CP_RE = re.compile(r"\bscore cp (-?\d+)")
_DEPTH_RE = re.compile(r"\bdepth (\d+)")
_NO_MOVE_TOKENS = {"(none)", "none", "0000"}


@dataclass(frozen=True)
class UciOk:
    pass


@dataclass(frozen=True)
class ReadyOk:
    pass


@dataclass(frozen=True)
class OptionAck:
    name: str


@dataclass(frozen=True)
class SearchInfo:
    multipv: int
    score_cp: int | None
    score_mate: int | None      # signed, side-to-move relative
    pv: tuple[str, ...]         # coordinate moves, at most MAX_PV_MOVES
    depth: int | None = None


@dataclass(frozen=True)
class BestMove:
    move: str | None            # None when the engine has no legal move
    ponder: str | None = None


@dataclass(frozen=True)
class ErrorLine:
    text: str


Event = UciOk | ReadyOk | OptionAck | SearchInfo | BestMove | ErrorLine


def _parse_info(line: str, tokens: list[str]) -> SearchInfo | None:
    if "pv" not in tokens:
        return None
    pv_tokens = tokens[tokens.index("pv") + 1:]

    multipv_match = _MULTIPV_RE.search(line)
    multipv = int(multipv_match.group(1)) if multipv_match else 1

    score_cp = score_mate = None
    mate_match = _MATE_RE.search(line)
    if mate_match:
        score_mate = int(mate_match.group(1))
    else:
        cp_match = _CP_RE.search(line)
        if cp_match:
            score_cp = int(cp_match.group(1))

    depth_match = _DEPTH_RE.search(line)
    moves = [tok for tok in pv_tokens if MOVE_PATTERN.match(tok)]
    return SearchInfo(
        multipv=max(1, multipv),
        score_cp=score_cp,
        score_mate=score_mate,
        pv=tuple(moves[:MAX_PV_MOVES]),
        depth=int(depth_match.group(1)) if depth_match else None,
    )


def parse_line(line: str) -> Event | None:
    """Convert one raw engine output line into an event, or None."""
    line = line.strip()
    if not line:
        return None
    tokens = line.split()
    head = tokens[0]

    if head == "uciok":
        return UciOk()
    if head == "readyok":
        return ReadyOk()
    if head == "bestmove":
        move = tokens[1] if len(tokens) > 1 else None
        if move in _NO_MOVE_TOKENS:
            move = None
        ponder = None
        if len(tokens) > 3 and tokens[2] == "ponder":
            ponder = tokens[3]
        return BestMove(move=move, ponder=ponder)
    if head == "option" and len(tokens) > 2 and tokens[1] == "name":
        end = tokens.index("type") if "type" in tokens else len(tokens)
        return OptionAck(name=" ".join(tokens[2:end]))
    if head == "info":
        if len(tokens) > 2 and tokens[1] == "string":
            text = " ".join(tokens[2:])
            if text.lower().startswith("error"):
                return ErrorLine(text)
            return None
        return _parse_info(line, tokens)
    if line.startswith("Unknown command"):
        return ErrorLine(line)
    return None


# --- Outbound commands ---

def setoption_command(name: str, value: object) -> str:
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f"setoption name {name} value {value}"


def position_command(fen: str) -> str:
    return f"position fen {fen}"


def go_command(depth: int | None = None, movetime: int | None = None) -> str:
    parts = ["go"]
    if depth is not None:
        parts.append(f"depth {depth}")
    if movetime is not None:
        parts.append(f"movetime {movetime}")
    if len(parts) == 1:
        raise ValueError("go needs a depth or movetime bound")
    return " ".join(parts)
