# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Messaging commands.

Commands:
    mdk send <group_id> <message>                 Send a chat message
    mdk receive [--group-id G] [--since TS|ID]    Fetch new messages once
    mdk receive --watch [--poll-interval N]       Stream new messages (NDJSON)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import re

from ...core.exceptions import ConfigException, NotFoundError
from ...sync.watch import DEFAULT_POLL_INTERVAL, CancellationToken, Watcher, listen_for_interrupt
from ...transport.events import KIND_CHAT, Filter, Rumor
from ..output import output_stream
from ..utils import run_with_session

logger = logging.getLogger(__name__)

_HEX_32 = re.compile(r"^[0-9a-fA-F]{64}$")


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register messaging commands."""
    send_p = subparsers.add_parser("send", help="Send a message to a group")
    send_p.add_argument("group_id", help="Group ID (64 hex chars)")
    send_p.add_argument("message", help="Message content")
    send_p.set_defaults(func=cmd_send)

    recv_p = subparsers.add_parser("receive", help="Receive new messages")
    recv_p.add_argument("--group-id", help="Only this group (default: all groups)")
    recv_p.add_argument("--since", help="Only events at or after this unix timestamp, or after this event ID")
    recv_p.add_argument("--watch", action="store_true", help="Stream new messages continuously (NDJSON)")
    recv_p.add_argument(
        "--poll-interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL,
        help=f"Seconds between polls with --watch (default {DEFAULT_POLL_INTERVAL:g})",
    )
    recv_p.set_defaults(func=cmd_receive)


def parse_group_id(value: str) -> bytes:
    """Parse a transport group id given as 64 hex characters.

    Raises:
        ConfigException: If the value is not 32 bytes of hex
    """
    if not _HEX_32.match(value):
        raise ConfigException(f"Group ID must be 32 bytes of hex, got: {value}")
    return bytes.fromhex(value)


async def resolve_since(session, value: str | None) -> int | None:
    """Turn ``--since`` into a timestamp.

    A number is used as an inclusive timestamp. An event id resolves to
    that event's ``created_at + 1``.
    """
    if value is None:
        return None
    # 64 hex chars is always an event id, even when every char is a digit
    if _HEX_32.match(value):
        events = await session.transport.fetch(Filter(ids=[value.lower()], limit=1), timeout=session.config.fetch_timeout)
        if not events:
            raise NotFoundError("event", value)
        return events[0].created_at + 1
    if value.isdigit():
        return int(value)
    raise ConfigException(f"--since must be a unix timestamp or an event ID, got: {value}")


def cmd_send(args: argparse.Namespace) -> int:
    """Encrypt and publish a chat message."""

    async def body(session):
        nostr_group_id = parse_group_id(args.group_id)
        group = session.engine.find_group(nostr_group_id)
        if group is None:
            raise NotFoundError("group", args.group_id)

        rumor = Rumor.build(session.pubkey, KIND_CHAT, args.message)
        event = session.engine.create_message(group.mls_group_id, rumor)
        event_id = await session.transport.publish(event)
        return {
            "event_id": event_id,
            "group_id": group.nostr_group_id_hex,
            "message_length": len(args.message),
        }

    return run_with_session(args, body)


def cmd_receive(args: argparse.Namespace) -> int:
    """Fetch new messages once, or stream them with --watch."""

    async def body(session):
        targets = None
        if args.group_id:
            targets = [parse_group_id(args.group_id).hex()]

        syncer = session.syncer()
        since = await resolve_since(session, args.since)

        if not args.watch:
            return (await syncer.sync(targets, since=since)).to_dict()

        if since is not None:
            for message in (await syncer.sync(targets, since=since)).messages:
                output_stream(message.to_dict())

        token = CancellationToken()
        listener = asyncio.create_task(listen_for_interrupt(token))
        watcher = Watcher(
            syncer,
            poll_interval=args.poll_interval,
            on_message=lambda m: output_stream(m.to_dict()),
            token=token,
        )
        try:
            stats = await watcher.run(targets)
        finally:
            listener.cancel()
            await asyncio.gather(listener, return_exceptions=True)
        logger.info(f"Watch finished: {stats.to_dict()}")
        return None

    return run_with_session(args, body)
