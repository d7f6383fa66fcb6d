"""pointboard: team task board with points. Main entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

from pointboard.auth import AuthManager
from pointboard.board import BoardStore
from pointboard.config_loader import TrackerConfig, load_config
from pointboard.points_ledger import PointsLedger
from pointboard.retry import RetryExecutor
from pointboard.shop import PointsShop
from pointboard.store.database import Database
from pointboard.workflows.list_reorder import ListReorderWorkflow
from pointboard.workflows.task_completion import TaskCompletionWorkflow

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("config/pointboard.yaml")


class Tracker:
    """Container for the store, ledger, shop and workflows of one running instance."""

    def __init__(self, db: Database, config: TrackerConfig, auth: AuthManager | None = None):
        self.db = db
        self.config = config
        self.auth = auth or AuthManager(enabled=config.auth_enabled, tokens=config.auth_tokens)
        self.board = BoardStore(db)
        self.ledger = PointsLedger(db, points_per_story_point=config.points_per_story_point)
        self.executor = RetryExecutor(
            max_attempts=config.retry.max_attempts,
            initial_delay=config.retry.initial_delay,
            max_delay=config.retry.max_delay,
            jitter=(config.retry.jitter_min, config.retry.jitter_max),
        )
        self.task_completion = TaskCompletionWorkflow(
            db,
            self.board,
            self.ledger,
            executor=self.executor,
            award_attempts=config.retry.max_attempts,
            award_initial_delay=config.retry.initial_delay,
        )
        self.list_reorder = ListReorderWorkflow(db, self.board)
        self.shop = PointsShop(db)

    async def close(self) -> None:
        await self.db.close()


async def build_tracker(config: TrackerConfig) -> Tracker:
    """Open the database described by *config* and wire up the components."""
    db = Database(config.db_path)
    await db.initialize()
    logger.info("Database ready at %s", config.db_path)
    return Tracker(db, config)


async def run_server(tracker: Tracker, host: str | None = None, port: int | None = None) -> None:
    import uvicorn
    from pointboard.dashboard.app import create_app

    app = create_app(tracker)
    config = uvicorn.Config(
        app,
        host=host or tracker.config.dashboard_host,
        port=port or tracker.config.dashboard_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    finally:
        await tracker.close()


async def show_leaderboard(tracker: Tracker, limit: int = 10) -> list[dict]:
    """Print the top of the leaderboard."""
    entries = await tracker.ledger.leaderboard(limit)
    print("\n=== Leaderboard ===\n")
    if not entries:
        print("  (no users)")
    for entry in entries:
        print(f"  {entry['rank']:>3}. {entry['display_name']:<24} {entry['total_points']:>6}")
    return entries


async def async_main(args: argparse.Namespace) -> None:
    config = load_config(Path(args.config))
    tracker = await build_tracker(config)

    if args.command == "serve":
        await run_server(tracker, host=args.host, port=args.port)
        return

    try:
        if args.command == "leaderboard":
            await show_leaderboard(tracker, args.limit)
        elif args.command == "init-db":
            print(f"Database initialized at {config.db_path}")
    finally:
        await tracker.close()


def cli_main() -> None:
    # Load .env before anything else so env vars are available immediately
    load_dotenv()

    from pointboard.logging_config import setup_logging
    setup_logging()

    parser = argparse.ArgumentParser(prog="pointboard", description="pointboard: team task board with points")
    sub = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = sub.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--config", default=str(DEFAULT_CONFIG), help="Path to pointboard.yaml")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)

    init_parser = sub.add_parser("init-db", help="Create the database schema")
    init_parser.add_argument("--config", default=str(DEFAULT_CONFIG), help="Path to pointboard.yaml")

    lb_parser = sub.add_parser("leaderboard", help="Print the points leaderboard")
    lb_parser.add_argument("--config", default=str(DEFAULT_CONFIG), help="Path to pointboard.yaml")
    lb_parser.add_argument("--limit", type=int, default=10)

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        raise SystemExit(1)

    asyncio.run(async_main(args))


if __name__ == "__main__":
    cli_main()
