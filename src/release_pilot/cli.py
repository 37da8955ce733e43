"""Command line entry point.

    release-pilot start [--runner R] [--source S] [--package-type P] [--dry-run] [--config-file F]
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from pydantic import ValidationError

from release_pilot import __version__
from release_pilot.config import ConfigurationResolver
from release_pilot.core.logging import setup_logging
from release_pilot.engine.pipeline import create_engine

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="release-pilot")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Run the release pipeline for the current build")
    start.add_argument("--runner", type=str, default=None, help="CI runner (default, circleci)")
    start.add_argument("--source", type=str, default=None, help="Source host (github)")
    start.add_argument(
        "--package-type",
        type=str,
        default=None,
        help="Package type (node, python, ruby, chef, default)",
    )
    start.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Build, test and package without publishing",
    )
    start.add_argument("--config-file", type=Path, default=None, help="System config file")
    return p.parse_args(argv)


def _options(args: argparse.Namespace) -> dict:
    return {
        "runner": args.runner,
        "source": args.source,
        "package_type": args.package_type,
        "dry_run": args.dry_run,
        "config_file": args.config_file,
    }


def start(args: argparse.Namespace) -> int:
    resolver = ConfigurationResolver(_options(args))
    try:
        config = resolver.resolve()
    except ValidationError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Invalid configuration: {exc}")
        return 1
    setup_logging(config)

    try:
        engine = create_engine(resolver, config)
        engine.start()
    except Exception as exc:
        logger.error(f"Release failed: {exc}", extra={"error_type": type(exc).__name__})
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.command == "start":
        return start(args)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
