"""Command-line entry point for the email MCP server."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from email_mcp.core import (
    AppSettings,
    ConfigurationError,
    configure_logging,
    load_app_settings,
)
from email_mcp.core.config import LoggingSettings
from email_mcp.server import SERVER_NAME, create_server

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="MCP server bridging IMAP mailboxes and SMTP sending"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration values.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="serve",
        choices=["serve", "info"],
        help="Run the stdio server (default) or print the resolved endpoints.",
    )
    return parser


def describe_settings(settings: AppSettings) -> list[str]:
    """Summarise the resolved endpoints without exposing credentials."""
    return [
        f"  Email: {settings.account.address}",
        f"  IMAP: {settings.imap.host}:{settings.imap.port} ({settings.imap.security})",
        f"  SMTP: {settings.smtp.host}:{settings.smtp.port} ({settings.smtp.security})",
    ]


def execute(args: argparse.Namespace, settings: AppSettings) -> None:
    """Execute the requested CLI command."""
    if args.command == "info":
        print(f"{SERVER_NAME} configuration:")
        for line in describe_settings(settings):
            print(line)
        return

    LOGGER.info("%s starting", SERVER_NAME)
    for line in describe_settings(settings):
        LOGGER.info(line)
    server = create_server(settings)
    LOGGER.info("%s server running on stdio", SERVER_NAME)
    server.run()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_app_settings(env_file=args.env_file)
    except ConfigurationError as exc:
        configure_logging(LoggingSettings())
        LOGGER.error("%s", exc)
        sys.exit(1)

    configure_logging(settings.logging)
    execute(args, settings)


if __name__ == "__main__":
    main()
