# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Incremental message sync.

One pass fetches group messages newer than the stored cursors, decrypts
them, advances the cursors and returns the messages in timestamp order.

The lower bound sent to relays is the MINIMUM cursor across the target
groups so that the least-advanced group is never starved. Groups further
ahead are re-fetched, and events at or below their own cursor are dropped
before they reach the engine.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ..core.config import DEFAULT_FETCH_TIMEOUT
from ..core.exceptions import EngineError
from ..crypto.engine import GroupEngine
from ..transport.events import GROUP_TAG, KIND_GROUP_MESSAGE, Filter
from ..transport.relay import RelayTransport
from .classifier import is_self_authored
from .cursors import CursorStore
from .pipeline import DecryptedMessage, DeliveryPipeline

logger = logging.getLogger(__name__)

MESSAGE_FETCH_LIMIT = 100


@dataclass
class SyncResult:
    """Outcome of one sync pass."""

    messages: list[DecryptedMessage] = field(default_factory=list)
    fetched: int = 0
    skipped: int = 0
    self_authored: int = 0
    lower_bound: int | None = None
    groups: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.messages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "count": self.count,
            "fetched": self.fetched,
            "skipped": self.skipped,
            "self_authored": self.self_authored,
            "since": self.lower_bound,
            "groups": list(self.groups),
        }


class IncrementalSync:
    """Cursor-driven fetch and decrypt of group messages.

    Args:
        engine: Group-state engine (source of the default target groups)
        transport: Relay transport used for the fetch
        pipeline: Pipeline that decrypts each event
        cursors: Loaded cursor store
        fetch_timeout: Seconds to wait for relays
        fetch_limit: Maximum events requested per pass
    """

    def __init__(
        self,
        engine: GroupEngine,
        transport: RelayTransport,
        pipeline: DeliveryPipeline,
        cursors: CursorStore,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        fetch_limit: int = MESSAGE_FETCH_LIMIT,
    ):
        self.engine = engine
        self.transport = transport
        self.pipeline = pipeline
        self.cursors = cursors
        self.fetch_timeout = fetch_timeout
        self.fetch_limit = fetch_limit

    def resolve_targets(self, target_groups: Iterable[str] | None = None) -> list[str]:
        """Explicit targets, or every group the engine knows about."""
        if target_groups is not None:
            targets = [g.lower() for g in target_groups]
        else:
            targets = [group.nostr_group_id_hex for group in self.engine.get_groups()]
        # Deduplicate, keep order
        return list(dict.fromkeys(targets))

    def resolve_lower_bound(self, targets: list[str], since: int | None = None) -> int | None:
        """Effective ``since`` for the relay filter.

        An explicit ``since`` is used as given (inclusive). Otherwise the
        minimum cursor plus one, or None if any target has no cursor.
        """
        if since is not None:
            return since
        bound = self.cursors.lower_bound(targets)
        return None if bound is None else bound + 1

    async def sync(
        self,
        target_groups: Iterable[str] | None = None,
        since: int | None = None,
        persist: bool = True,
    ) -> SyncResult:
        """Run one sync pass.

        Args:
            target_groups: Transport group ids (hex); defaults to all groups
            since: Explicit inclusive lower bound; ignores stored cursors
            persist: Flush cursors when done

        Returns:
            SyncResult with messages ordered by created_at

        Raises:
            TransportError: If the fetch fails or times out (no cursor moves)
        """
        targets = self.resolve_targets(target_groups)
        if not targets:
            logger.debug("No target groups, nothing to sync")
            return SyncResult()

        bound = self.resolve_lower_bound(targets, since)
        result = SyncResult(lower_bound=bound, groups=targets)

        message_filter = Filter(kinds=[KIND_GROUP_MESSAGE], since=bound, limit=self.fetch_limit)
        message_filter.with_tag(GROUP_TAG, targets)

        events = await self.transport.fetch(message_filter, timeout=self.fetch_timeout)
        result.fetched = len(events)
        logger.debug(f"Fetched {len(events)} events for {len(targets)} groups (since={bound})")

        # Guard against the cursors as they were before this pass so that
        # out-of-order events in one batch are not mistaken for replays.
        seen = self.cursors.snapshot() if since is None else {}

        for event in events:
            if is_self_authored(event, self.pipeline.local_pubkey):
                result.self_authored += 1
                continue

            group_id = (event.group_id or "").lower()
            cursor = seen.get(group_id)
            if cursor is not None and event.created_at <= cursor:
                result.skipped += 1
                continue

            try:
                message = self.pipeline.decrypt(event)
            except EngineError as e:
                logger.debug(f"Skipping event {event.id}: {e}")
                result.skipped += 1
                continue

            if message is None:
                result.skipped += 1
                continue

            result.messages.append(message)
            self.cursors.advance(group_id or message.group_id, message.created_at)

        # sorted() is stable: equal timestamps keep fetch order
        result.messages = sorted(result.messages, key=lambda m: m.created_at)

        if persist:
            self.cursors.flush()

        logger.info(
            f"Sync: {result.count} new messages, {result.skipped} skipped, "
            f"{result.self_authored} own ({result.fetched} fetched)"
        )
        return result
