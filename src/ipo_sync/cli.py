from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from .api.server import build_orchestrator, create_app
from .config import Settings, configure_logging
from .core.models import Category, StatusFilter
from .db import open_database
from .notify import ChangeBroadcaster


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="IPO reconciliation against ipopremium and chittorgarh")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML file with scheduler settings (default: $IPO_SYNC_CONFIG or config.yaml).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one sync batch and print the result")
    sync_parser.add_argument(
        "--category", choices=[c.value for c in Category], default=Category.MAINBOARD.value)
    sync_parser.add_argument(
        "--status", choices=[s.value for s in StatusFilter], default=StatusFilter.LIVE.value)

    subparsers.add_parser("backfill", help="Insert missing details_ipo rows")

    serve_parser = subparsers.add_parser("serve", help="Run the API server with the scheduler")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


async def _sync(settings: Settings, category: str, status: str) -> int:
    db = await open_database(settings)
    try:
        orchestrator = build_orchestrator(db, ChangeBroadcaster(), settings)
        result = await orchestrator.sync_batch(category, status)
    finally:
        await db.close()
    print(result.model_dump_json(indent=2))
    return 0 if result.ok else 1


async def _backfill(settings: Settings) -> int:
    db = await open_database(settings)
    try:
        inserted = await db.backfill_details()
    finally:
        await db.close()
    print(f"{inserted} details rows inserted")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env(args.config)
    configure_logging(settings.log_level)

    if args.command == "sync":
        return asyncio.run(_sync(settings, args.category, args.status))
    if args.command == "backfill":
        return asyncio.run(_backfill(settings))
    if args.command == "serve":
        import uvicorn

        uvicorn.run(create_app(settings), host=args.host, port=args.port)
        return 0

    parser.error("Unknown command")
    return 1


if __name__ == "__main__":  # pragma: no cover - exercised via CLI entry point
    raise SystemExit(main())
