"""Command-line entry point: ``python -m taskgate``."""

from __future__ import annotations

import argparse
import sys

import uvicorn

from taskgate.core.config import load_settings
from taskgate.core.logging import configure_logging
from taskgate.web.app import create_app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Serve the taskgate Remember The Milk gateway over HTTP."
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a YAML config file.",
    )
    parser.add_argument("--host", type=str, default=None, help="Bind address.")
    parser.add_argument("--port", type=int, default=None, help="Bind port.")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides the config file).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"taskgate: {exc}", file=sys.stderr)
        return 2

    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port
    if args.log_level:
        settings.log_level = args.log_level

    configure_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
