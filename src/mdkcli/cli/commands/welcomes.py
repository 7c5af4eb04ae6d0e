# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Welcome commands.

Commands:
    mdk list-welcomes               List pending welcome invitations
    mdk accept-welcome <event_id>   Accept a welcome and join the group
"""

from __future__ import annotations

import argparse

from ..utils import run_with_session


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register welcome commands."""
    list_p = subparsers.add_parser("list-welcomes", help="List pending welcome invitations")
    list_p.set_defaults(func=cmd_list_welcomes)

    accept_p = subparsers.add_parser("accept-welcome", help="Accept a welcome invitation and join the group")
    accept_p.add_argument("event_id", help="Event ID of the welcome to accept")
    accept_p.set_defaults(func=cmd_accept_welcome)


def cmd_list_welcomes(args: argparse.Namespace) -> int:
    """List welcomes addressed to the local identity."""

    async def body(session):
        welcomes = await session.inbox().list_welcomes()
        return {
            "welcomes": [w.to_dict() for w in welcomes],
            "count": len(welcomes),
        }

    return run_with_session(args, body)


def cmd_accept_welcome(args: argparse.Namespace) -> int:
    """Process and accept one welcome."""

    async def body(session):
        group = await session.inbox().accept(args.event_id.lower())
        return {
            "nostr_group_id": group.nostr_group_id_hex,
            "group_name": group.name,
            "member_count": group.member_count,
            "event_id": args.event_id.lower(),
        }

    return run_with_session(args, body)
