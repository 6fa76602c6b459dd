"""Command-line entry point: ``chat-thyme [options]``."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Sequence

from chat_thyme.config import load_config

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chat-thyme",
        description="Discord bot relaying threads to an OpenAI-compatible model server.",
    )
    parser.add_argument("-c", "--config", help="Path to a TOML config file (default: ./config.toml)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper, help="Root log level")
    parser.add_argument("-m", "--model", help="Model name to chat with")
    parser.add_argument("-s", "--server-url", dest="server_url", help="OpenAI-compatible server base URL")
    parser.add_argument(
        "-t",
        "--use-tools",
        dest="use_tools",
        action="store_true",
        default=None,
        help="Let the model call the web search tool",
    )
    parser.add_argument("-p", "--system-prompt", dest="system_prompt", help="System prompt for every chat")
    parser.add_argument("-o", "--db-dir", dest="db_dir", help="Directory holding the per-user SQLite files")
    parser.add_argument(
        "--db-connection-cache-size",
        dest="db_connection_cache_size",
        type=int,
        help="Desired maximum number of open user databases",
    )
    parser.add_argument(
        "--db-connection-cache-ttl",
        dest="db_connection_cache_ttl",
        type=int,
        help="Milliseconds an idle user database stays open",
    )
    parser.add_argument(
        "--db-connection-cache-check-interval",
        dest="db_connection_cache_check_interval",
        type=int,
        help="Milliseconds between idle database sweeps",
    )
    parser.add_argument(
        "--discord-slow-mode-interval",
        dest="discord_slow_mode_interval",
        type=int,
        help="Slow mode seconds for new chat threads (0 disables)",
    )
    return parser


_NON_SETTINGS = {"config", "log_level"}


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Return the settings given on the command line, without the unset ones."""
    return {key: value for key, value in vars(args).items() if key not in _NON_SETTINGS and value is not None}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        logging.getLogger().setLevel(args.log_level)

    try:
        config = load_config(args.config, overrides_from_args(args))
    except (ValueError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1

    # Imported late so ``--help`` and config errors do not pay for discord.py.
    from chat_thyme.clients import disc

    logger.info("Starting chat-thyme with model %s at %s", config.core.MODEL, config.core.SERVER_URL)
    disc.run(config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
