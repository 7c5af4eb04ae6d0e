# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Group listing.

Commands:
    mdk list-groups      List groups the local identity belongs to
"""

from __future__ import annotations

import argparse

from ..utils import run_with_session


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the group listing command."""
    list_p = subparsers.add_parser("list-groups", help="List active groups")
    list_p.set_defaults(func=cmd_list_groups)


def cmd_list_groups(args: argparse.Namespace) -> int:
    """List groups from the local engine (no relay access)."""

    async def body(session):
        groups = session.engine.get_groups()
        return {
            "groups": [
                {
                    "nostr_group_id": g.nostr_group_id_hex,
                    "name": g.name,
                    "member_count": g.member_count,
                }
                for g in groups
            ],
            "count": len(groups),
        }

    return run_with_session(args, body, connect=False)
