"""One-shot engine queries from the command line.

Usage:
    python -m sparring.cli analyze <fen> [--depth N]
    python -m sparring.cli move <fen> (--level N | --rating R)
    python -m sparring.cli level <rating>

Global options: [--engine PATH] [--no-delay] [-v]. Prints JSON.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from sparring.companion import Companion
from sparring.config import Settings
from sparring.engine import EngineError, EngineSession
from sparring.levels import get_level_profile, level_for


async def _run(args: argparse.Namespace) -> dict:
    settings = Settings()
    if args.engine:
        settings.engine_path = args.engine
    if args.no_delay:
        settings.thinking_delay = False

    engine = EngineSession(
        engine_path=settings.engine_path,
        engine_args=settings.engine_args,
        startup_timeout=settings.startup_timeout,
        search_timeout=settings.search_timeout,
        max_elo=settings.max_uci_elo,
    )
    companion = Companion(engine, settings=settings)
    async with engine:
        if args.command == "analyze":
            result = await companion.analyze_position(args.fen, depth=args.depth)
            return result.to_dict()

        if args.rating is not None:
            decision = await companion.get_ai_move(args.fen, args.rating, by="rating")
        else:
            decision = await companion.get_ai_move(args.fen, args.level, by="level")
        return {
            "uci": decision.uci,
            "san": decision.san,
            "engine_move": decision.engine_move,
            "tier": decision.tier.value,
            "level": decision.level,
        }


def _level(rating: float) -> dict:
    settings = Settings()
    profile = get_level_profile(level_for(rating, settings.min_rating, settings.max_rating))
    return {
        "rating": rating,
        "level": profile.level,
        "description": profile.description,
        "display_name": profile.display_name,
        "kind": profile.policy.kind,
    }


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Engine moves and analysis for a position",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--engine", metavar="PATH", help="UCI engine binary (default: settings)")
    parser.add_argument("--no-delay", action="store_true", help="Skip the thinking delay")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log engine traffic")
    sub = parser.add_subparsers(dest="command", required=True)

    p_analyze = sub.add_parser("analyze", help="Multi-PV analysis")
    p_analyze.add_argument("fen", help="Position FEN (quote the full string)")
    p_analyze.add_argument("--depth", type=int, default=15)

    p_move = sub.add_parser("move", help="Pick the bot's move")
    p_move.add_argument("fen", help="Position FEN (quote the full string)")
    group = p_move.add_mutually_exclusive_group(required=True)
    group.add_argument("--level", type=int)
    group.add_argument("--rating", type=float)

    p_level = sub.add_parser("level", help="Level a rating maps to")
    p_level.add_argument("rating", type=float)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "level":
        result = _level(args.rating)
    else:
        try:
            result = asyncio.run(_run(args))
        except (ValueError, EngineError) as e:
            print(f"error: {e}", file=sys.stderr)
            sys.exit(1)
    json.dump(result, sys.stdout, indent=2)
    print()


if __name__ == "__main__":
    main()
