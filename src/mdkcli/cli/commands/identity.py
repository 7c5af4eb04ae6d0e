# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Identity commands.

Commands:
    mdk init [--nsec-file F]     Create or import an identity and the state DB
    mdk whoami                   Show identity and configuration
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from ...core.exceptions import ConfigException, MDKException
from ...crypto.keys import Identity, load_identity, save_identity
from ...crypto.local import LocalGroupEngine
from ..output import output_error, output_result
from ..utils import config_from_args, run_with_session

logger = logging.getLogger(__name__)


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register identity commands."""
    init_p = subparsers.add_parser("init", help="Initialize with a new or existing identity")
    init_p.add_argument("--nsec-file", help="Import the secret key (hex or nsec) from this file")
    init_p.set_defaults(func=cmd_init)

    whoami_p = subparsers.add_parser("whoami", help="Show identity info (npub, pubkey)")
    whoami_p.set_defaults(func=cmd_whoami)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    """Create or load the identity, create the database, save the config."""
    try:
        config = config_from_args(args)
        key_path = config.key_file or config.default_key_path

        if args.nsec_file:
            nsec_path = Path(args.nsec_file).expanduser()
            try:
                secret = nsec_path.read_text()
            except OSError as e:
                raise ConfigException(f"Failed to read nsec file {nsec_path}: {e}") from e
            identity = Identity.parse(secret)
            save_identity(identity, key_path)
            key_created = True
        elif key_path.exists():
            identity = load_identity(key_path)
            key_created = False
        else:
            identity = Identity.generate()
            save_identity(identity, key_path)
            key_created = True

        db_created = not config.db_path.exists()
        config.ensure_state_dir()
        LocalGroupEngine(identity, config.db_path).close()

        config.key_file = key_path
        try:
            config.save()
        except OSError as e:
            logger.warning(f"Failed to save config: {e}")
    except MDKException as e:
        output_error(e.message)
        return 1

    output_result({
        "pubkey": identity.public_key,
        "npub": identity.npub,
        "key_file": str(key_path),
        "db_path": str(config.db_path),
        "key_created": key_created,
        "db_created": db_created,
    })
    return 0


def cmd_whoami(args: argparse.Namespace) -> int:
    """Show the local identity."""

    async def body(session):
        config = session.config
        return {
            "pubkey": session.identity.public_key,
            "npub": session.identity.npub,
            "key_file": str(config.key_file or config.default_key_path),
            "db_path": str(config.db_path),
            "db_exists": config.db_path.exists(),
            "relays": list(config.relays),
        }

    return run_with_session(args, body, connect=False)
