"""Command-line entry point."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import anyio

from . import __version__
from .bridge.runtime import run
from .config import load_config
from .errors import ConfigError
from .log import get_logger, setup_logging

logger = get_logger(__name__)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opencode-matrix",
        description="Matrix bot with per-user and per-room model preferences.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="path to config.toml (default: ~/.opencode-matrix/config.toml)",
    )
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--version", action="version", version=__version__)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    setup_logging(debug=args.debug)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logger.error("matrix.config.invalid", error=str(exc))
        return 2
    try:
        anyio.run(run, config)
    except KeyboardInterrupt:
        logger.info("matrix.bridge.stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
