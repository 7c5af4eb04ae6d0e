# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Gift-wrap opener backed by nostr-sdk (NIP-59)."""

from __future__ import annotations

import logging

from nostr_sdk import Event, NostrSigner, UnwrappedGift

from ..core.exceptions import FormatError
from ..transport.events import Rumor, TransportEvent
from .envelope import EnvelopeOpener, UnwrappedRumor
from .keys import Identity

logger = logging.getLogger(__name__)


class Nip59Opener(EnvelopeOpener):
    """Opens kind 1059 gift-wraps addressed to ``identity``."""

    def __init__(self, identity: Identity):
        self.identity = identity
        self._signer = NostrSigner.keys(identity.keys)

    async def extract(self, wrapped: TransportEvent) -> UnwrappedRumor:
        try:
            event = Event.from_json(wrapped.to_json())
            gift = await UnwrappedGift.from_gift_wrap(self._signer, event)
            rumor_json = gift.rumor().as_json()
            sender = gift.sender().to_hex()
        except Exception as e:
            # nostr_sdk raises its own error type for every unwrap failure
            raise FormatError(f"Could not unwrap gift-wrap: {e}", event_id=wrapped.id) from e

        return UnwrappedRumor(rumor=Rumor.from_json(rumor_json), sender=sender)
