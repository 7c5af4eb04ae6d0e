#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
mdk - MLS-encrypted group messaging over Nostr relays.

Commands:
  mdk init                     Create or import an identity
  mdk whoami                   Show identity info
  mdk publish-key-package      Publish a key package so others can invite you
  mdk list-welcomes            List pending invitations
  mdk accept-welcome <id>      Join a group
  mdk list-groups              List joined groups
  mdk send <group> <message>   Send a message
  mdk receive [--watch]        Receive new messages
"""

from __future__ import annotations

import argparse
import logging
import sys

from ..core.logging import configure_logging
from .commands import COMMAND_MODULES

logger = logging.getLogger(__name__)


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mdk",
        description="CLI for MLS-encrypted messaging over Nostr",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mdk init                                  Create a new identity
  mdk publish-key-package                   Let others invite you
  mdk accept-welcome <event-id>             Join a group
  mdk send <group-id> "hello"               Send a message
  mdk receive --since 1700000000            Messages since a timestamp
  mdk receive --watch --poll-interval 10    Stream messages as NDJSON

Environment:
  MDK_KEY_FILE, MDK_DB_PATH, MDK_RELAYS, MDK_LOG_LEVEL
        """,
    )
    parser.add_argument("--key-file", help="Path to the secret key file (env: MDK_KEY_FILE)")
    parser.add_argument("--db-path", help="Path to the state database (default: ~/.mdk/state.db)")
    parser.add_argument("--relays", help="Comma-separated relay URLs (env: MDK_RELAYS)")
    parser.add_argument("--config", help="Path to the config file (default: ~/.mdk/config.toml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for module in COMMAND_MODULES:
        module.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    configure_logging(level="DEBUG" if args.verbose else None)

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
