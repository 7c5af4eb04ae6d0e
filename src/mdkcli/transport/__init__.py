# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Relay transport: event model, relay pool, in-memory relay."""

from .events import (
    GROUP_TAG,
    KIND_CHAT,
    KIND_GIFT_WRAP,
    KIND_GROUP_MESSAGE,
    KIND_KEY_PACKAGE,
    KIND_WELCOME,
    EventSigner,
    Filter,
    Rumor,
    TransportEvent,
    compute_event_id,
    sign_event,
)
from .memory import MemoryRelay
from .relay import RelayPool, RelayTransport

__all__ = [
    "GROUP_TAG",
    "KIND_CHAT",
    "KIND_GIFT_WRAP",
    "KIND_GROUP_MESSAGE",
    "KIND_KEY_PACKAGE",
    "KIND_WELCOME",
    "EventSigner",
    "Filter",
    "MemoryRelay",
    "RelayPool",
    "RelayTransport",
    "Rumor",
    "TransportEvent",
    "compute_event_id",
    "sign_event",
]
