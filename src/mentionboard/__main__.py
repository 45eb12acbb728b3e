"""CLI entry-point: ``python -m mentionboard run|refresh|leaderboard|user``."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from mentionboard import config
from mentionboard.pipeline import (
    build_components,
    build_ingestor,
    build_resolver,
    run_refresh,
    setup_logging,
)
from mentionboard.price import PriceTicker
from mentionboard.ranking import author_detail, rank, window_stats
from mentionboard.scheduler import run_forever
from mentionboard.window import current_window_start

logger = logging.getLogger(__name__)


def _run_daemon(topic: str) -> None:
    components = build_components(topic)
    ticker = PriceTicker(coin_id=config.PRICE_COIN_ID)
    run_forever(build_ingestor(components), ticker)


def _print_leaderboard(topic: str, limit: int) -> None:
    components = build_components(topic)
    window_start = current_window_start()
    entries = rank(components.store, window_start, limit=limit)
    payload = {
        "window_start": window_start.isoformat(),
        "stats": window_stats(components.store, window_start).model_dump(mode="json"),
        "leaderboard": [e.model_dump(mode="json") for e in entries],
    }
    print(json.dumps(payload, indent=2))


def _print_user(topic: str, handle: str, resolve: bool) -> None:
    components = build_components(topic)
    if resolve:
        build_resolver(components).resolve(handle)
    detail = author_detail(components.store, handle, current_window_start())
    if detail is None:
        logger.error("User not found: @%s", handle.lstrip("@"))
        sys.exit(1)
    print(json.dumps(detail.model_dump(mode="json"), indent=2))


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="mentionboard",
        description="Weekly mention leaderboard from X Recent Search.",
    )
    parser.add_argument(
        "--topic",
        default=config.DEFAULT_TOPIC,
        help=f"Which topic profile to use (default: {config.DEFAULT_TOPIC}).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command")

    # ── run ────────────────────────────────────────────────────────────
    sub.add_parser("run", help="Start the scheduler (ingestion + price refresh).")

    # ── refresh ────────────────────────────────────────────────────────
    sub.add_parser("refresh", help="Run a single ingestion cycle and exit.")

    # ── leaderboard ───────────────────────────────────────────────────
    lb_parser = sub.add_parser("leaderboard", help="Print the current weekly leaderboard.")
    lb_parser.add_argument(
        "--limit", type=int, default=100, help="Number of authors to show (default: 100)."
    )

    # ── user ──────────────────────────────────────────────────────────
    user_parser = sub.add_parser("user", help="Print one author's weekly stats and rank.")
    user_parser.add_argument("handle", help="Author handle, with or without @.")
    user_parser.add_argument(
        "--resolve",
        action="store_true",
        help="Look the author up on X when they are not stored yet.",
    )

    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose)

    if args.command == "run":
        _run_daemon(args.topic)
    elif args.command == "refresh":
        run_refresh(topic=args.topic)
    elif args.command == "leaderboard":
        _print_leaderboard(args.topic, args.limit)
    elif args.command == "user":
        _print_user(args.topic, args.handle, args.resolve)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
