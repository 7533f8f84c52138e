"""CLI interface for Tollgate."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import uvicorn
from dotenv import load_dotenv

from tollgate.api.app import create_app
from tollgate.core.config import Config, load_config
from tollgate.core.logging import setup_logging
from tollgate.db.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


def build_config(args: argparse.Namespace) -> Config:
    """Load the config file and apply command-line overrides.

    A missing file is an error only when a path was given explicitly.
    """
    overrides: dict[str, Any] = {}
    if getattr(args, "host", None):
        overrides.setdefault("server", {})["host"] = args.host
    if getattr(args, "port", None):
        overrides.setdefault("server", {})["port"] = args.port
    if getattr(args, "db_path", None):
        overrides.setdefault("database", {})["path"] = args.db_path
    if getattr(args, "verbose", False):
        overrides.setdefault("logging", {})["level"] = "DEBUG"

    config_path: Path | None = args.config
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return Config.model_validate(overrides)
        config_path = DEFAULT_CONFIG_PATH

    return load_config(config_path, overrides=overrides)


async def run_migrate(args: argparse.Namespace, config: Config) -> None:
    """Handle database migration commands."""
    if not args.init:
        logger.error("No migration action specified. Use --init")
        sys.exit(1)

    logger.info("Initializing database...")
    db_manager = DatabaseManager(config.database.path)
    try:
        await db_manager.init_db()
        logger.info(f"Database initialized successfully at {config.database.path}")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)
    finally:
        await db_manager.close()


async def run_server(config: Config) -> None:
    """Serve the WebSocket channel and monitoring API until signalled."""
    app = create_app(config)

    uvicorn_config = uvicorn.Config(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
    server = uvicorn.Server(uvicorn_config)

    # Setup signal handlers for graceful shutdown
    stop_event = asyncio.Event()

    def signal_handler() -> None:
        stop_event.set()

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, signal_handler)
    loop.add_signal_handler(signal.SIGTERM, signal_handler)

    server_task = asyncio.create_task(server.serve())
    logger.info(f"Tollgate listening on {config.server.host}:{config.server.port}")

    try:
        await stop_event.wait()
        logger.info("Shutdown signal received, stopping...")
    finally:
        server.should_exit = True
        await server_task


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tollgate - human approval gate for frontend tasks")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Database migration commands",
    )
    migrate_parser.add_argument(
        "--init",
        action="store_true",
        help="Initialize the database (create tables)",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH} if present)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--host",
        type=str,
        help="Server host (overrides server.host)",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Server port (overrides server.port)",
    )
    parser.add_argument(
        "--db-path",
        type=str,
        help="Path to SQLite database (overrides database.path)",
    )
    return parser


async def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    config = build_config(args)

    setup_logging(
        level=config.logging.level,
        directory=config.logging.directory,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count,
    )

    if args.command == "migrate":
        await run_migrate(args, config)
        return

    await run_server(config)


def run() -> None:
    """Entry point for the console script."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
