# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Watch mode: poll for new messages until cancelled.

The loop polls immediately, emits every new message as soon as its cycle
produces it, persists cursors after each cycle and then sleeps. The sleep
races a timer against a cancellation token, so a cancel is honoured
without waiting out the interval and without another fetch.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from ..core.exceptions import ConfigException, TransportError
from ..core.logging import cycle_context
from .incremental import IncrementalSync
from .pipeline import DecryptedMessage

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0

MessageCallback = Callable[[DecryptedMessage], Awaitable[None] | None]


class CancellationToken:
    """One-shot cancellation signal shared between tasks."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for cancellation.

        Returns:
            True if cancelled, False if the timeout elapsed first
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


class WatchState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    SLEEPING = "sleeping"
    TERMINATED = "terminated"


@dataclass
class WatchStats:
    """Counters for a watch run."""

    cycles: int = 0
    messages: int = 0
    failed_cycles: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "cycles": self.cycles,
            "messages": self.messages,
            "failed_cycles": self.failed_cycles,
        }


class Watcher:
    """Repeatedly runs incremental sync and streams the results.

    Example:
        >>> token = CancellationToken()
        >>> watcher = Watcher(syncer, poll_interval=5, on_message=print, token=token)
        >>> stats = await watcher.run()
    """

    def __init__(
        self,
        sync: IncrementalSync,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        on_message: MessageCallback | None = None,
        token: CancellationToken | None = None,
    ):
        self.sync = sync
        self.poll_interval = poll_interval
        self.on_message = on_message
        self.token = token or CancellationToken()
        self.state = WatchState.IDLE
        self.stats = WatchStats()

    async def run(self, target_groups: Iterable[str] | None = None) -> WatchStats:
        """Poll until the token is cancelled.

        Raises:
            ConfigException: If there are no groups to watch
        """
        targets = self.sync.resolve_targets(target_groups)
        if not targets:
            raise ConfigException("No groups to watch. Accept a welcome first.")

        logger.info(f"Watching {len(targets)} groups every {self.poll_interval}s")
        try:
            while not self.token.cancelled:
                self.state = WatchState.POLLING
                await self._poll(targets)

                self.state = WatchState.SLEEPING
                if await self.token.wait(self.poll_interval):
                    break
        finally:
            self.state = WatchState.TERMINATED
            logger.info(f"Watch stopped after {self.stats.cycles} cycles, {self.stats.messages} messages")
        return self.stats

    async def _poll(self, targets: list[str]) -> None:
        """Run one cycle. Transport failures skip the cycle."""
        with cycle_context(groups=len(targets)) as cycle:
            self.stats.cycles += 1
            try:
                result = await self.sync.sync(targets, persist=False)
            except TransportError as e:
                self.stats.failed_cycles += 1
                logger.warning(f"Poll cycle failed, retrying in {self.poll_interval}s: {e}")
                return
            finally:
                self.sync.cursors.flush()

            cycle.update(fetched=result.fetched, skipped=result.skipped, delivered=result.count)
            logger.debug("Poll cycle complete")

            for message in result.messages:
                self.stats.messages += 1
                await self._emit(message)

    async def _emit(self, message: DecryptedMessage) -> None:
        if self.on_message is None:
            return
        outcome = self.on_message(message)
        if asyncio.iscoroutine(outcome):
            await outcome


async def listen_for_interrupt(token: CancellationToken) -> None:
    """Cancel ``token`` on the first SIGINT or SIGTERM.

    Runs until the signal arrives (or the task is cancelled), then restores
    default handling.
    """
    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        loop.add_signal_handler(sig, token.cancel)
    try:
        await token.wait()
        logger.debug("Interrupt received, stopping watch")
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)
