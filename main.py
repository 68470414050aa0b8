from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import uvicorn
from dotenv import load_dotenv

from mediahub.core.config import AppConfig
from mediahub.core.logging import setup_logging
from mediahub.core.migrations import apply_migrations
from mediahub.storage.store import open_document_store
from web_api import create_app

LOGGER = logging.getLogger(__name__)
APP_ROOT = Path(__file__).resolve().parent


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MediaHub API server and maintenance commands.")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change (development only).",
    )

    commands.add_parser(
        "migrate",
        help="Apply task-queue schema migrations and document-store index migrations.",
    )
    commands.add_parser(
        "drain-queue",
        help="Process every due background task once and exit.",
    )
    return parser


def migrate(config: AppConfig, app_root: Path) -> dict[str, Any]:
    """Bring both stores up to date; Mongo index migrations run on connect."""
    queue_path = (app_root / config.queue.sqlite_path).resolve()
    applied = apply_migrations(queue_path)
    store = open_document_store(config.store, app_root)
    return {
        "queue_database": str(queue_path),
        "queue_migrations": applied,
        "document_store": type(store).__name__,
    }


def drain_queue(config: AppConfig, app_root: Path) -> int:
    app = create_app(config=config, app_root=app_root)
    queue = app.state.task_queue
    try:
        return asyncio.run(queue.run_pending())
    finally:
        queue.close()


def main() -> None:
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)
    args = build_parser().parse_args()

    if args.command == "serve":
        uvicorn.run("web_api:app", host=args.host, port=args.port, reload=args.reload)
        return
    if args.command == "migrate":
        summary = migrate(config, APP_ROOT)
    else:
        summary = {"processed": drain_queue(config, APP_ROOT)}
    LOGGER.info("Command %s finished", args.command)
    print(json.dumps(summary, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
