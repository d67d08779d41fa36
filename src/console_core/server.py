"""Entrypoint for the console core service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from console_core import __version__
from console_core.app import build_app_context
from console_core.config import load_settings
from console_core.logging_utils import configure_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="console-core", description=__doc__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command")

    commands.add_parser("serve", help="Run the HTTP server (default)")

    purge = commands.add_parser("purge-audit", help="Delete audit entries past retention")
    purge.add_argument(
        "--days",
        type=int,
        default=None,
        help="Days of history to keep (defaults to AUDIT_RETENTION_DAYS)",
    )
    return parser


def _run_http() -> None:
    settings = load_settings()
    from console_core.transport.http_app import create_http_app

    try:
        import uvicorn
    except ImportError as exc:
        raise RuntimeError("uvicorn is required to serve HTTP") from exc

    app = create_http_app(build_app_context(settings))
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


def _run_purge(days: int | None) -> int:
    """Run one retention sweep as a system action and return the count."""
    settings = load_settings()
    context = build_app_context(settings)
    days_to_keep = settings.audit.retention_days if days is None else days
    try:
        return asyncio.run(context.sweeper.purge_older_than(days_to_keep))
    finally:
        context.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging()
    logger.info("Console core v%s", __version__)

    if args.command == "purge-audit":
        deleted = _run_purge(args.days)
        print(f"Deleted {deleted} audit entries")
        return 0

    _run_http()
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
