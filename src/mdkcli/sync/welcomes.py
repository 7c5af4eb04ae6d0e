# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Pending welcome inbox.

Lists welcomes addressed to the local identity (plain kind 444 and
gift-wrapped kind 1059) and accepts one by event id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..core.config import DEFAULT_FETCH_TIMEOUT
from ..core.exceptions import FormatError, NotFoundError
from ..crypto.engine import Group
from ..crypto.keys import npub_for
from ..transport.events import KIND_GIFT_WRAP, KIND_WELCOME, Filter
from ..transport.relay import RelayTransport
from .pipeline import DeliveryPipeline

logger = logging.getLogger(__name__)

WELCOME_FETCH_LIMIT = 50


@dataclass
class WelcomeInfo:
    event_id: str
    sender: str
    created_at: int
    is_gift_wrapped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "sender": self.sender,
            "from_npub": npub_for(self.sender),
            "created_at": self.created_at,
            "is_gift_wrapped": self.is_gift_wrapped,
        }


class WelcomeInbox:
    """Welcomes waiting for the local identity."""

    def __init__(
        self,
        transport: RelayTransport,
        pipeline: DeliveryPipeline,
        local_pubkey: str,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
    ):
        self.transport = transport
        self.pipeline = pipeline
        self.local_pubkey = local_pubkey
        self.fetch_timeout = fetch_timeout

    async def list_welcomes(self) -> list[WelcomeInfo]:
        """Fetch welcomes addressed to us, newest first.

        Gift-wraps that cannot be opened or do not hold a welcome are left
        out.

        Raises:
            TransportError: If either fetch fails
        """
        plain = await self.transport.fetch(
            Filter(kinds=[KIND_WELCOME], limit=WELCOME_FETCH_LIMIT).with_tag("p", [self.local_pubkey]),
            timeout=self.fetch_timeout,
        )
        wrapped = await self.transport.fetch(
            Filter(kinds=[KIND_GIFT_WRAP], limit=WELCOME_FETCH_LIMIT).with_tag("p", [self.local_pubkey]),
            timeout=self.fetch_timeout,
        )

        welcomes = [
            WelcomeInfo(event_id=event.id, sender=event.pubkey, created_at=event.created_at)
            for event in plain
        ]
        for event in wrapped:
            try:
                envelope = await self.pipeline.unwrap_welcome(event)
            except FormatError as e:
                logger.debug(f"Ignoring gift-wrap {event.id}: {e}")
                continue
            welcomes.append(WelcomeInfo(
                event_id=event.id,
                sender=envelope.sender,
                created_at=event.created_at,
                is_gift_wrapped=True,
            ))

        welcomes.sort(key=lambda w: w.created_at, reverse=True)
        return welcomes

    async def accept(self, event_id: str) -> Group:
        """Fetch a welcome by id, process it and join the group.

        Raises:
            NotFoundError: If no relay returns the event
            FormatError: If the event is not a usable welcome
            EngineError: If the engine rejects the welcome
            TransportError: If the fetch fails
        """
        events = await self.transport.fetch(Filter(ids=[event_id], limit=1), timeout=self.fetch_timeout)
        if not events:
            raise NotFoundError("welcome", event_id)

        event = events[0]
        descriptor = await self.pipeline.process_welcome(event)
        group = self.pipeline.accept_welcome(descriptor)
        logger.info(f"Accepted welcome {event_id[:16]} into group {group.name}")
        return group
