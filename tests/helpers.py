"""Test doubles and event builders shared across the test suite."""

from __future__ import annotations

import hashlib
import json

from mdkcli.core.exceptions import FormatError
from mdkcli.crypto.envelope import EnvelopeOpener, UnwrappedRumor
from mdkcli.crypto.local import LocalGroupEngine
from mdkcli.transport.events import (
    KIND_CHAT,
    KIND_GIFT_WRAP,
    KIND_KEY_PACKAGE,
    KIND_WELCOME,
    Rumor,
    TransportEvent,
    sign_event,
)


class FakeSigner:
    """Deterministic stand-in for a secp256k1 identity."""

    def __init__(self, name: str):
        self.name = name
        self._public_key = hashlib.sha256(f"pub:{name}".encode()).hexdigest()

    @property
    def public_key(self) -> str:
        return self._public_key

    @property
    def npub(self) -> str:
        return f"npub1{self.name}"

    def sign(self, event_id: str) -> str:
        return hashlib.sha512(f"{self.name}:{event_id}".encode()).hexdigest()


class FakeOpener(EnvelopeOpener):
    """Opens test gift-wraps whose content is ``{"rumor": ..., "sender": ...}``."""

    def __init__(self):
        self.calls = 0

    async def extract(self, wrapped: TransportEvent) -> UnwrappedRumor:
        self.calls += 1
        try:
            data = json.loads(wrapped.content)
            return UnwrappedRumor(rumor=Rumor.from_dict(data["rumor"]), sender=data["sender"])
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise FormatError(f"Cannot open test envelope: {e}", event_id=wrapped.id)


# ============================================================================
# Event builders
# ============================================================================


def key_package_event(engine: LocalGroupEngine) -> TransportEvent:
    """Create and sign a key package for the engine's identity."""
    content, tags = engine.create_key_package(["wss://relay.example.com"])
    return sign_event(engine.signer, KIND_KEY_PACKAGE, content, tags)


def welcome_event(sender, recipient_pubkey: str, rumor: Rumor, created_at: int | None = None) -> TransportEvent:
    """Plain kind 444 event whose content is the welcome rumor."""
    return sign_event(sender, KIND_WELCOME, rumor.to_json(), [["p", recipient_pubkey]], created_at=created_at)


def gift_wrap_event(
    wrapper,
    recipient_pubkey: str,
    rumor: Rumor,
    sender_pubkey: str,
    created_at: int | None = None,
) -> TransportEvent:
    """Kind 1059 event readable by ``FakeOpener``."""
    content = json.dumps({"rumor": rumor.to_dict(), "sender": sender_pubkey})
    return sign_event(wrapper, KIND_GIFT_WRAP, content, [["p", recipient_pubkey]], created_at=created_at)


def join_group(inviter_engine: LocalGroupEngine, invitee_engine: LocalGroupEngine, name: str = "test group"):
    """Have the inviter create a group and the invitee join it.

    Returns:
        The group as seen by the invitee
    """
    kp = key_package_event(invitee_engine)
    _, welcomes = inviter_engine.create_group(name, [kp])
    event = welcome_event(inviter_engine.signer, invitee_engine.signer.public_key, welcomes[0])
    descriptor = invitee_engine.process_welcome(event.id, welcomes[0])
    invitee_engine.accept_welcome(descriptor)
    return invitee_engine.find_group(descriptor.nostr_group_id)


def group_message(engine: LocalGroupEngine, group, content: str, created_at: int) -> TransportEvent:
    """Encrypt a chat message and re-sign it at ``created_at``.

    The engine stamps events with the current time; tests need fixed
    timestamps.
    """
    rumor = Rumor.build(engine.signer.public_key, KIND_CHAT, content)
    event = engine.create_message(group.mls_group_id, rumor)
    return sign_event(engine.signer, event.kind, event.content, event.tags, created_at=created_at)
