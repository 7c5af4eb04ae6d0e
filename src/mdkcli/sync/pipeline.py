# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Unwrap/decrypt pipeline.

Turns classified transport events into one of three outcomes:

- a WelcomeDescriptor (welcomes, plain or gift-wrapped)
- a DecryptedMessage (application messages)
- Skip (self-authored, unrecognized, control messages, any failure)

Per-event failures never escape ``process``; batch callers only see the
aggregate. The individual operations (``unwrap_welcome``, ``decrypt``...)
do raise, so explicit user requests can report what went wrong.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..core.exceptions import EngineError, FormatError, NotFoundError
from ..crypto.engine import ApplicationMessage, Group, GroupEngine, WelcomeDescriptor
from ..crypto.envelope import EnvelopeOpener
from ..crypto.keys import npub_for
from ..transport.events import KIND_GIFT_WRAP, KIND_WELCOME, Rumor, TransportEvent
from .classifier import EventClass, classify, is_self_authored

logger = logging.getLogger(__name__)


@dataclass
class WelcomeEnvelope:
    """A welcome rumor together with where it came from."""

    rumor: Rumor
    sender: str
    event: TransportEvent
    gift_wrapped: bool = False


@dataclass
class DecryptedMessage:
    """An application message ready for output."""

    event_id: str
    sender: str
    group_id: str
    content: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "sender": self.sender,
            "from_npub": npub_for(self.sender),
            "group_id": self.group_id,
            "content": self.content,
            "created_at": self.created_at,
        }

    @classmethod
    def from_application(cls, message: ApplicationMessage, event: TransportEvent) -> DecryptedMessage:
        return cls(
            event_id=event.id,
            sender=message.sender,
            group_id=event.group_id or message.nostr_group_id.hex(),
            content=message.content,
            created_at=event.created_at,
        )


@dataclass
class PipelineOutcome:
    """Result of pushing one event through the pipeline.

    Exactly one of ``welcome`` / ``message`` is set, or neither (Skip).
    """

    event: TransportEvent
    welcome: WelcomeDescriptor | None = None
    message: DecryptedMessage | None = None
    reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.welcome is None and self.message is None


class DeliveryPipeline:
    """Routes events to the envelope opener and the group engine.

    Args:
        engine: Group-state engine holding the local key material
        opener: Sealed-envelope opener for gift-wraps
        local_pubkey: Hex public key of the local identity
    """

    def __init__(self, engine: GroupEngine, opener: EnvelopeOpener, local_pubkey: str):
        self.engine = engine
        self.opener = opener
        self.local_pubkey = local_pubkey

    # -------------------------------------------------------------------------
    # WELCOMES
    # -------------------------------------------------------------------------

    async def unwrap_welcome(self, event: TransportEvent) -> WelcomeEnvelope:
        """Extract the welcome rumor from a plain or gift-wrapped welcome.

        Raises:
            FormatError: If the content cannot be parsed, the envelope cannot
                be opened, or the inner record is not a welcome
        """
        if event.kind == KIND_WELCOME:
            rumor = Rumor.from_json(event.content)
            envelope = WelcomeEnvelope(rumor=rumor, sender=event.pubkey, event=event)
        elif event.kind == KIND_GIFT_WRAP:
            unwrapped = await self.opener.extract(event)
            envelope = WelcomeEnvelope(
                rumor=unwrapped.rumor,
                sender=unwrapped.sender,
                event=event,
                gift_wrapped=True,
            )
        else:
            raise FormatError(f"Event kind {event.kind} cannot carry a welcome", event_id=event.id)

        if envelope.rumor.kind != KIND_WELCOME:
            raise FormatError(
                f"Expected inner kind {KIND_WELCOME}, got {envelope.rumor.kind}",
                event_id=event.id,
            )
        return envelope

    async def process_welcome(self, event: TransportEvent) -> WelcomeDescriptor:
        """Unwrap a welcome and validate it with the engine. Does not join."""
        envelope = await self.unwrap_welcome(event)
        return self.engine.process_welcome(event.id, envelope.rumor)

    def accept_welcome(self, descriptor: WelcomeDescriptor) -> Group:
        """Join the group described by a processed welcome.

        Raises:
            EngineError: If the engine refuses the welcome
            NotFoundError: If the group is not listed after accepting
        """
        self.engine.accept_welcome(descriptor)
        for group in self.engine.get_groups():
            if group.mls_group_id == descriptor.mls_group_id:
                return group
        raise NotFoundError("group", descriptor.nostr_group_id.hex())

    # -------------------------------------------------------------------------
    # MESSAGES
    # -------------------------------------------------------------------------

    def decrypt(self, event: TransportEvent) -> DecryptedMessage | None:
        """Decrypt a group message.

        Returns:
            The message, or None when the engine produced a control result

        Raises:
            EngineError: If the engine cannot process the event
        """
        result = self.engine.process_message(event)
        if not isinstance(result, ApplicationMessage):
            logger.debug(f"Event {event.id} processed as {type(result).__name__}")
            return None
        return DecryptedMessage.from_application(result, event)

    # -------------------------------------------------------------------------
    # BATCH ENTRY POINT
    # -------------------------------------------------------------------------

    async def process(self, event: TransportEvent) -> PipelineOutcome:
        """Route one event. Never raises for per-event failures."""
        if is_self_authored(event, self.local_pubkey):
            return PipelineOutcome(event, reason="self_authored")

        classified = classify(event)
        try:
            if classified.event_class in (EventClass.WELCOME, EventClass.GIFT_WRAPPED_WELCOME):
                return PipelineOutcome(event, welcome=await self.process_welcome(event))
            if classified.event_class is EventClass.APPLICATION_MESSAGE:
                message = self.decrypt(event)
                if message is None:
                    return PipelineOutcome(event, reason="control_message")
                return PipelineOutcome(event, message=message)
        except (FormatError, EngineError) as e:
            logger.debug(f"Skipping event {event.id}: {e}")
            return PipelineOutcome(event, reason=type(e).__name__)

        return PipelineOutcome(event, reason="unrecognized")
