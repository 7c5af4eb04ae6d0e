# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""In-process relay.

Implements the same contract as ``RelayPool`` without any network: events
are stored in a list and fetches are answered with ``Filter.matches``.
Useful for tests and for wiring several local clients together.

Example:
    >>> relay = MemoryRelay()
    >>> await relay.publish(event)
    >>> await relay.fetch(Filter(kinds=[445]), timeout=1)
"""

from __future__ import annotations

import logging

from ..core.exceptions import TransportError
from .events import Filter, TransportEvent
from .relay import RelayTransport

logger = logging.getLogger(__name__)


class MemoryRelay(RelayTransport):
    """A relay that lives in memory."""

    def __init__(self, events: list[TransportEvent] | None = None):
        self.events: list[TransportEvent] = list(events or [])
        self.connected = False
        self.fetch_calls: list[Filter] = []
        self.fail_with: TransportError | None = None

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    def add(self, *events: TransportEvent) -> None:
        """Store events without going through publish."""
        for event in events:
            if all(e.id != event.id for e in self.events):
                self.events.append(event)

    async def publish(self, event: TransportEvent) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.add(event)
        return event.id

    async def fetch(self, filter: Filter, timeout: float) -> list[TransportEvent]:
        self.fetch_calls.append(filter)
        if self.fail_with is not None:
            raise self.fail_with

        matched = [e for e in self.events if filter.matches(e)]
        if filter.limit is not None and len(matched) > filter.limit:
            # Relays answer newest-first when a limit applies
            matched = sorted(matched, key=lambda e: e.created_at, reverse=True)[: filter.limit]
        logger.debug(f"Memory relay matched {len(matched)} events")
        return matched
