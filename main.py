"""Command-line interface for the jobs tracker service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from jobtracker.config import Settings, load_settings
from jobtracker.database import Database
from jobtracker.errors import ConfigurationError
from jobtracker.sessions import SessionManager

logger = logging.getLogger("jobtracker.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML configuration file (default: JOBTRACKER_CONFIG)",
    )

    parser = argparse.ArgumentParser(description="Jobs tracker utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve", config=None)

    subparsers.add_parser("init-db", parents=[common], help="Create the database schema")
    subparsers.add_parser(
        "purge-sessions",
        parents=[common],
        help="Delete expired sessions from the database",
    )

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP service")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port to listen on (default: 3000)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "purge-sessions"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _purge_sessions(settings: Settings, database: Database) -> int:
    manager = SessionManager(
        database,
        secret_key=settings.session_secret,
        ttl=settings.session_ttl,
    )
    return manager.purge_expired()


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from jobtracker.web import create_app
    import uvicorn

    logger.info("Starting jobs tracker on http://%s:%s (%s)", host, port, settings.environment)

    app = create_app(settings, database=database, initialize_database=False)
    uvicorn.run(app, host=host, port=port, log_level="info", proxy_headers=False)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    try:
        settings = load_settings(args.config)
    except ConfigurationError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    elif args.command == "purge-sessions":
        removed = _purge_sessions(settings, database)
        print(f"Removed {removed} expired session(s).")


if __name__ == "__main__":
    main()
