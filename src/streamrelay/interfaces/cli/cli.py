from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from streamrelay.domain.exceptions import ConfigurationError
from streamrelay.infrastructure.config import load_config
from streamrelay.infrastructure.logging.setup import configure_logging
from streamrelay.interfaces.app import create_app

log = structlog.get_logger(__name__)

_DEFAULT_PORT = 7004


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="streamrelay")

    # Server options
    parser.add_argument(
        "--host",
        default=None,
        help="Bind host (overrides HOST env).",
    )
    parser.add_argument(
        "--port",
        default=None,
        type=int,
        help=f"Bind port (overrides PORT env, default {_DEFAULT_PORT}).",
    )

    # Config wiring flags (no business logic)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )
    parser.add_argument(
        "--public-url",
        default=None,
        help="Base URL embedded into relay links (e.g. https://relay.example.org).",
    )
    parser.add_argument(
        "--no-relay",
        action="store_true",
        help="Return adaptive streams as-is instead of routing them through the relay.",
    )

    return parser.parse_args(argv)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    if args.public_url:
        overrides["relay_public_url"] = args.public_url
    if args.no_relay:
        overrides["relay_enabled"] = False
    return overrides


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Loads config exactly once, then builds the FastAPI app with it.
    Returns a non-zero exit code when configuration is unusable.
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = int(args.port or os.getenv("PORT", str(_DEFAULT_PORT)))

    config = load_config(
        config_path=Path(args.config) if args.config else None,
        dotenv_path=Path(args.dotenv) if args.dotenv else None,
        cli_overrides=_cli_overrides(args),
    )

    log_config = configure_logging(config)

    try:
        app = create_app(config)
    except ConfigurationError as exc:
        log.error("configuration_invalid", error=str(exc))
        return 2

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_config=log_config,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(start())
