"""Board rules backed by python-chess: validation, legal moves, SAN replay."""

from __future__ import annotations

import logging

import chess

logger = logging.getLogger(__name__)


class IllegalMoveReplayError(ValueError):
    """A PV token could not be applied to the position it was reported for."""

    def __init__(self, fen: str, move: str):
        super().__init__(f"Cannot apply {move} to {fen}")
        self.fen = fen
        self.move = move


def load_board(fen: str) -> chess.Board:
    try:
        board = chess.Board(fen)
    except ValueError as e:
        raise ValueError(f"Invalid FEN: {fen}") from e
    if not board.is_valid():
        raise ValueError(f"Illegal position: {fen}")
    return board


def side_to_move(fen: str) -> str:
    """'white' or 'black', read straight from the FEN's active-colour field."""
    fields = fen.split()
    return "black" if len(fields) > 1 and fields[1] == "b" else "white"


def legal_moves(fen: str) -> list[str]:
    """All legal moves in UCI coordinate form."""
    return [m.uci() for m in load_board(fen).legal_moves]


def apply_uci(board: chess.Board, uci: str) -> str:
    """Push a coordinate move onto board and return its SAN.

    Raises IllegalMoveReplayError if the token is malformed or illegal.
    """
    try:
        move = chess.Move.from_uci(uci)
    except (chess.InvalidMoveError, ValueError) as e:
        raise IllegalMoveReplayError(board.fen(), uci) from e
    if move not in board.legal_moves:
        raise IllegalMoveReplayError(board.fen(), uci)
    san = board.san(move)
    board.push(move)
    return san


def replay_pv(fen: str, pv: list[str] | tuple[str, ...]) -> list[str]:
    """Convert a coordinate PV to SAN, stopping at the first illegal move."""
    board = chess.Board(fen)
    sans: list[str] = []
    for uci in pv:
        try:
            sans.append(apply_uci(board, uci))
        except IllegalMoveReplayError as e:
            logger.warning("PV truncated after %d moves: %s", len(sans), e)
            break
    return sans


def to_san(fen: str, uci: str) -> str | None:
    board = chess.Board(fen)
    try:
        return apply_uci(board, uci)
    except IllegalMoveReplayError:
        return None


def is_checkmate(fen: str) -> bool:
    return load_board(fen).is_checkmate()


def game_status(board: chess.Board) -> str:
    if board.is_checkmate():
        return "checkmate"
    if board.is_stalemate():
        return "stalemate"
    if board.is_insufficient_material() or board.can_claim_draw():
        return "draw"
    return "playing"
