"""CLI entrypoint for the rook webhook gateway."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import ConfigError, load_config
from .logging import configure_logging, get_logger
from .service import run_service


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rook",
        description="Receive signed webhooks and launch the configured commands.",
    )
    parser.add_argument(
        "config",
        help="Path to the YAML configuration file.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Increase log verbosity for troubleshooting.",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write log lines to this file.",
    )
    parser.add_argument(
        "--inherit-output",
        action="store_true",
        default=False,
        help="Let launched commands write to this process's stdout/stderr.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for rook."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)
    logger = get_logger()

    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    if args.inherit_output:
        config.inherit_output = True

    logger.info("listening on %s:%d", config.addr, config.port)
    run_service(config)
    logger.info("shutting down")


if __name__ == "__main__":
    main(sys.argv[1:])
