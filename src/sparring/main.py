import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Literal

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from sparring.companion import Companion
from sparring.config import Settings
from sparring.engine import ConcurrentSearchError, EngineError
from sparring.levels import LEVELS, LevelProfile

logger = logging.getLogger(__name__)

settings = Settings()
companion = Companion.from_settings(settings)

# --- Initialization status tracking ---

_init_status: dict[str, dict] = {
    "engine": {"state": "pending", "detail": ""},
    "stats": {"state": "pending", "detail": ""},
}


def _set_status(task: str, state: str, detail: str = "") -> None:
    _init_status[task] = {"state": state, "detail": detail}


def _all_done() -> bool:
    return all(t["state"] in ("done", "failed") for t in _init_status.values())


async def _init_engine() -> None:
    _set_status("engine", "running", f"Starting {settings.engine_path}...")
    try:
        await companion.engine.start()
        _set_status("engine", "done", "Engine ready")
    except EngineError as e:
        logger.error("Engine init failed: %s", e)
        _set_status("engine", "failed", str(e))


async def _init_stats() -> None:
    _set_status("stats", "running", "Opening stats database...")
    try:
        await companion.stats.start()
        _set_status("stats", "done", "Stats database ready")
    except Exception as e:
        logger.error("Stats init failed: %s", e)
        _set_status("stats", "failed", str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    for task in _init_status:
        _set_status(task, "pending")
    tasks = [
        asyncio.create_task(_init_engine()),
        asyncio.create_task(_init_stats()),
    ]
    yield
    for t in tasks:
        t.cancel()
    await companion.stats.close()
    await companion.engine.stop()


app = FastAPI(title="Sparring", lifespan=lifespan)


# --- Request/Response models ---

class MoveRequest(BaseModel):
    fen: str
    level: int | None = Field(default=None, ge=1)
    rating: float | None = None


class AnalyzeRequest(BaseModel):
    fen: str
    depth: int = Field(default=15, ge=1, le=60)


class GameResultRequest(BaseModel):
    outcome: Literal["win", "loss", "draw"]
    moves: list[str] = []
    pgn: str = ""
    accuracy: float = 0.0
    blunders: int = 0
    mistakes: int = 0
    inaccuracies: int = 0
    player_color: Literal["white", "black"] | None = None
    ai_level: int | None = None


def _profile_dict(profile: LevelProfile) -> dict:
    return {
        "level": profile.level,
        "description": profile.description,
        "display_name": profile.display_name,
        "kind": profile.policy.kind,
        "policy": asdict(profile.policy),
    }


def _engine_http_error(e: Exception) -> HTTPException:
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ConcurrentSearchError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=503, detail=str(e))


def _require_stats() -> None:
    if not companion.stats.available:
        raise HTTPException(status_code=503, detail="Stats database not available")


# --- Endpoints ---

@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/status")
async def status():
    return {
        "ready": _all_done(),
        "tasks": _init_status,
    }


@app.get("/api/levels")
async def levels():
    return [_profile_dict(p) for p in LEVELS]


@app.get("/api/levels/for-rating/{rating}")
async def level_for_rating(rating: float):
    level = companion.level_for(rating)
    return {"rating": rating, "level": level, "profile": _profile_dict(LEVELS[level - 1])}


@app.post("/api/move")
async def move(req: MoveRequest):
    if req.level is None and req.rating is None:
        raise HTTPException(status_code=400, detail="Give either level or rating")
    if req.level is not None:
        value, by = req.level, "level"
    else:
        value, by = req.rating, "rating"
    try:
        decision = await companion.get_ai_move(req.fen, value, by=by)
    except (ValueError, EngineError) as e:
        raise _engine_http_error(e) from e
    return {
        "uci": decision.uci,
        "san": decision.san,
        "engine_move": decision.engine_move,
        "tier": decision.tier.value,
        "level": decision.level,
    }


@app.post("/api/analyze")
async def analyze(req: AnalyzeRequest):
    try:
        result = await companion.analyze_position(req.fen, depth=req.depth)
    except (ValueError, EngineError) as e:
        raise _engine_http_error(e) from e
    return result.to_dict()


@app.get("/api/stats")
async def stats():
    _require_stats()
    player = await companion.stats.get_player_stats()
    summary = await companion.stats.game_summary()
    return {
        "player": asdict(player),
        "summary": asdict(summary),
        "level": companion.level_for(player.current_rating),
    }


@app.post("/api/games")
async def record_game(req: GameResultRequest):
    _require_stats()
    player, record = await companion.record_game(**req.model_dump())
    return {"player": asdict(player), "game": asdict(record)}


@app.get("/api/games")
async def games(limit: int = Query(50, ge=1, le=1000), offset: int = Query(0, ge=0)):
    _require_stats()
    records = await companion.stats.get_games(limit=limit, offset=offset)
    return [asdict(r) for r in records]
