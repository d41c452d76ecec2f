"""Player stats and finished-game records, stored in SQLite via aiosqlite."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from sparring.rating import DEFAULT_RATING, RatingState

SCHEMA = """
CREATE TABLE IF NOT EXISTS player_stats (
    id                 INTEGER PRIMARY KEY CHECK (id = 1),
    current_rating     INTEGER NOT NULL,
    total_games        INTEGER NOT NULL,
    wins               INTEGER NOT NULL,
    losses             INTEGER NOT NULL,
    draws              INTEGER NOT NULL,
    win_rate           REAL    NOT NULL,
    average_accuracy   REAL    NOT NULL,
    best_accuracy      REAL    NOT NULL,
    win_streak         INTEGER NOT NULL,
    loss_streak        INTEGER NOT NULL,
    consecutive_losses INTEGER NOT NULL,
    last_updated       TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS games (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    result        TEXT    NOT NULL CHECK (result IN ('win', 'loss', 'draw')),
    moves         TEXT    NOT NULL,
    pgn           TEXT    NOT NULL DEFAULT '',
    accuracy      REAL    NOT NULL DEFAULT 0,
    blunders      INTEGER NOT NULL DEFAULT 0,
    mistakes      INTEGER NOT NULL DEFAULT 0,
    inaccuracies  INTEGER NOT NULL DEFAULT 0,
    date          TEXT    NOT NULL,
    rating_before INTEGER NOT NULL,
    rating_after  INTEGER NOT NULL,
    win_streak    INTEGER NOT NULL,
    loss_streak   INTEGER NOT NULL,
    player_color  TEXT,
    ai_level      INTEGER
);
CREATE INDEX IF NOT EXISTS idx_games_date ON games(date);
"""

_STATS_COLUMNS = (
    "current_rating", "total_games", "wins", "losses", "draws", "win_rate",
    "average_accuracy", "best_accuracy", "win_streak", "loss_streak",
    "consecutive_losses", "last_updated",
)
_GAME_COLUMNS = (
    "result", "moves", "pgn", "accuracy", "blunders", "mistakes", "inaccuracies",
    "date", "rating_before", "rating_after", "win_streak", "loss_streak",
    "player_color", "ai_level",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PlayerStats:
    current_rating: int = DEFAULT_RATING
    total_games: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    win_rate: float = 0.0
    average_accuracy: float = 0.0
    best_accuracy: float = 0.0
    win_streak: int = 0
    loss_streak: int = 0
    consecutive_losses: int = 0
    last_updated: str = field(default_factory=_now)

    @property
    def rating_state(self) -> RatingState:
        return RatingState(
            current_rating=self.current_rating,
            total_games=self.total_games,
            wins=self.wins,
            losses=self.losses,
            draws=self.draws,
            win_streak=self.win_streak,
            loss_streak=self.loss_streak,
            consecutive_losses=self.consecutive_losses,
        )

    def with_rating(self, state: RatingState) -> PlayerStats:
        return PlayerStats(
            current_rating=state.current_rating,
            total_games=state.total_games,
            wins=state.wins,
            losses=state.losses,
            draws=state.draws,
            win_rate=state.win_rate,
            average_accuracy=self.average_accuracy,
            best_accuracy=self.best_accuracy,
            win_streak=state.win_streak,
            loss_streak=state.loss_streak,
            consecutive_losses=state.consecutive_losses,
            last_updated=_now(),
        )


@dataclass
class GameRecord:
    result: str
    moves: list[str]
    rating_before: int
    rating_after: int
    win_streak: int
    loss_streak: int
    pgn: str = ""
    accuracy: float = 0.0
    blunders: int = 0
    mistakes: int = 0
    inaccuracies: int = 0
    date: str = field(default_factory=_now)
    player_color: str | None = None
    ai_level: int | None = None
    id: int | None = None


@dataclass
class GameSummary:
    total_games: int
    wins: int
    losses: int
    draws: int
    win_rate: float
    average_accuracy: float
    best_accuracy: float


def _row_to_game(row: aiosqlite.Row) -> GameRecord:
    return GameRecord(
        id=row["id"],
        result=row["result"],
        moves=json.loads(row["moves"]),
        pgn=row["pgn"],
        accuracy=row["accuracy"],
        blunders=row["blunders"],
        mistakes=row["mistakes"],
        inaccuracies=row["inaccuracies"],
        date=row["date"],
        rating_before=row["rating_before"],
        rating_after=row["rating_after"],
        win_streak=row["win_streak"],
        loss_streak=row["loss_streak"],
        player_color=row["player_color"],
        ai_level=row["ai_level"],
    )


class StatsStore:
    """Single-player stats row plus a log of finished games."""

    def __init__(self, db_path: str = "data/sparring.db", default_rating: int = DEFAULT_RATING):
        self._db_path = db_path
        self._default_rating = default_rating
        self._db: aiosqlite.Connection | None = None

    @property
    def available(self) -> bool:
        return self._db is not None

    async def start(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        if self._db_path != ":memory:":
            await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.executescript(SCHEMA)
        await self._ensure_default_stats()
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Stats store not started. Call start() first.")
        return self._db

    async def _ensure_default_stats(self) -> None:
        cursor = await self._conn().execute("SELECT 1 FROM player_stats WHERE id = 1")
        if await cursor.fetchone() is None:
            await self._write_stats(PlayerStats(current_rating=self._default_rating))

    async def _write_stats(self, stats: PlayerStats) -> None:
        values = asdict(stats)
        placeholders = ", ".join("?" for _ in _STATS_COLUMNS)
        await self._conn().execute(
            f"INSERT OR REPLACE INTO player_stats (id, {', '.join(_STATS_COLUMNS)}) "
            f"VALUES (1, {placeholders})",
            [values[c] for c in _STATS_COLUMNS],
        )

    async def get_player_stats(self) -> PlayerStats:
        cursor = await self._conn().execute(
            f"SELECT {', '.join(_STATS_COLUMNS)} FROM player_stats WHERE id = 1"
        )
        row = await cursor.fetchone()
        if row is None:
            return PlayerStats(current_rating=self._default_rating)
        return PlayerStats(**{c: row[c] for c in _STATS_COLUMNS})

    async def update_player_stats(self, stats: PlayerStats) -> None:
        await self._write_stats(stats)
        await self._conn().commit()

    async def _insert_game(self, game: GameRecord) -> int:
        values = asdict(game)
        values["moves"] = json.dumps(game.moves)
        placeholders = ", ".join("?" for _ in _GAME_COLUMNS)
        cursor = await self._conn().execute(
            f"INSERT INTO games ({', '.join(_GAME_COLUMNS)}) VALUES ({placeholders})",
            [values[c] for c in _GAME_COLUMNS],
        )
        game.id = cursor.lastrowid
        return cursor.lastrowid

    async def save_game(self, game: GameRecord) -> int:
        game_id = await self._insert_game(game)
        await self._conn().commit()
        return game_id

    async def record_game(self, game: GameRecord, stats: PlayerStats) -> PlayerStats:
        """Log a game and store the player's new stats in one commit.

        average_accuracy is recomputed over the games table, this one included.
        """
        db = self._conn()
        try:
            await self._insert_game(game)
            cursor = await db.execute("SELECT COALESCE(AVG(accuracy), 0) FROM games")
            (stats.average_accuracy,) = await cursor.fetchone()
            await self._write_stats(stats)
        except BaseException:
            await db.rollback()
            raise
        await db.commit()
        return stats

    async def get_games(self, limit: int = 50, offset: int = 0) -> list[GameRecord]:
        """Most recent games first."""
        cursor = await self._conn().execute(
            "SELECT * FROM games ORDER BY date DESC, id DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [_row_to_game(row) for row in await cursor.fetchall()]

    async def get_game(self, game_id: int) -> GameRecord | None:
        cursor = await self._conn().execute("SELECT * FROM games WHERE id = ?", (game_id,))
        row = await cursor.fetchone()
        return _row_to_game(row) if row else None

    async def game_summary(self) -> GameSummary:
        cursor = await self._conn().execute(
            "SELECT COUNT(*), "
            "COALESCE(SUM(result = 'win'), 0), "
            "COALESCE(SUM(result = 'loss'), 0), "
            "COALESCE(SUM(result = 'draw'), 0), "
            "COALESCE(AVG(accuracy), 0), "
            "COALESCE(MAX(accuracy), 0) "
            "FROM games"
        )
        total, wins, losses, draws, avg_acc, best_acc = await cursor.fetchone()
        return GameSummary(
            total_games=total,
            wins=wins,
            losses=losses,
            draws=draws,
            win_rate=wins / total * 100 if total else 0.0,
            average_accuracy=avg_acc,
            best_accuracy=best_acc,
        )

    async def clear(self) -> None:
        await self._conn().execute("DELETE FROM games")
        await self._conn().execute("DELETE FROM player_stats")
        await self._ensure_default_stats()
        await self._conn().commit()

    async def export_data(self, limit: int = 1000) -> dict:
        games = await self.get_games(limit=limit)
        stats = await self.get_player_stats()
        return {
            "games": [asdict(g) for g in games],
            "player_stats": asdict(stats),
        }

    async def import_data(self, data: dict) -> None:
        """Replace everything with a previous export_data() payload."""
        await self.clear()
        if data.get("player_stats"):
            await self.update_player_stats(PlayerStats(**data["player_stats"]))
        for game in reversed(data.get("games", [])):
            payload = {k: v for k, v in game.items() if k != "id"}
            await self.save_game(GameRecord(**payload))
