# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Sync and delivery orchestration.

- classifier: event kind -> event class
- pipeline: unwrap and decrypt events
- cursors: per-group incremental cursors
- incremental: one cursor-driven sync pass
- watch: long-running poll loop with cancellation
- welcomes: pending welcome inbox
"""

from .classifier import ClassifiedEvent, EventClass, classify, is_self_authored
from .cursors import CursorStore
from .incremental import MESSAGE_FETCH_LIMIT, IncrementalSync, SyncResult
from .pipeline import DecryptedMessage, DeliveryPipeline, PipelineOutcome, WelcomeEnvelope
from .watch import DEFAULT_POLL_INTERVAL, CancellationToken, Watcher, WatchState, WatchStats, listen_for_interrupt
from .welcomes import WELCOME_FETCH_LIMIT, WelcomeInbox, WelcomeInfo

__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "MESSAGE_FETCH_LIMIT",
    "WELCOME_FETCH_LIMIT",
    "CancellationToken",
    "ClassifiedEvent",
    "CursorStore",
    "DecryptedMessage",
    "DeliveryPipeline",
    "EventClass",
    "IncrementalSync",
    "PipelineOutcome",
    "SyncResult",
    "WatchState",
    "WatchStats",
    "Watcher",
    "WelcomeEnvelope",
    "WelcomeInbox",
    "WelcomeInfo",
    "classify",
    "is_self_authored",
    "listen_for_interrupt",
]
