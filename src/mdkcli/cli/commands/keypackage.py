# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Key package publishing.

Commands:
    mdk publish-key-package      Publish a key package (kind 443) to relays
"""

from __future__ import annotations

import argparse

from ...transport.events import KIND_KEY_PACKAGE, sign_event
from ..utils import run_with_session


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register the key package command."""
    publish_p = subparsers.add_parser("publish-key-package", help="Publish an MLS key package to relays (kind 443)")
    publish_p.set_defaults(func=cmd_publish_key_package)


def cmd_publish_key_package(args: argparse.Namespace) -> int:
    """Create, sign and publish a key package."""

    async def body(session):
        content, tags = session.engine.create_key_package(session.config.relays)
        event = sign_event(session.identity, KIND_KEY_PACKAGE, content, tags)
        event_id = await session.transport.publish(event)
        return {
            "event_id": event_id,
            "pubkey": session.pubkey,
            "relays": list(session.config.relays),
        }

    return run_with_session(args, body)
