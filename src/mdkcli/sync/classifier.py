# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Inbound event classification.

Classification is a pure function of the event kind. Gift-wraps are only
provisionally welcomes: the pipeline confirms the inner kind after
unwrapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..transport.events import KIND_GIFT_WRAP, KIND_GROUP_MESSAGE, KIND_WELCOME, TransportEvent


class EventClass(str, Enum):
    WELCOME = "welcome"
    GIFT_WRAPPED_WELCOME = "gift_wrapped_welcome"
    APPLICATION_MESSAGE = "application_message"
    UNRECOGNIZED = "unrecognized"


_KIND_CLASSES = {
    KIND_WELCOME: EventClass.WELCOME,
    KIND_GIFT_WRAP: EventClass.GIFT_WRAPPED_WELCOME,
    KIND_GROUP_MESSAGE: EventClass.APPLICATION_MESSAGE,
}


@dataclass(frozen=True)
class ClassifiedEvent:
    event_class: EventClass
    event: TransportEvent

    @property
    def recognized(self) -> bool:
        return self.event_class is not EventClass.UNRECOGNIZED


def classify(event: TransportEvent) -> ClassifiedEvent:
    return ClassifiedEvent(_KIND_CLASSES.get(event.kind, EventClass.UNRECOGNIZED), event)


def is_self_authored(event: TransportEvent, local_pubkey: str) -> bool:
    """True if the outer event was signed by the local identity."""
    return event.pubkey == local_pubkey
