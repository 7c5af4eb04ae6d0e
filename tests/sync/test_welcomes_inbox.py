"""Tests for the pending welcome inbox."""

from __future__ import annotations

import pytest
from helpers import gift_wrap_event, key_package_event, welcome_event

from mdkcli.core.exceptions import FormatError, NotFoundError, TransportError
from mdkcli.crypto.keys import npub_for
from mdkcli.sync.pipeline import DeliveryPipeline
from mdkcli.sync.welcomes import WelcomeInbox
from mdkcli.transport.events import Rumor, sign_event


@pytest.fixture
def inbox(bob, bob_engine, relay, opener):
    pipeline = DeliveryPipeline(bob_engine, opener, bob.public_key)
    return WelcomeInbox(relay, pipeline, bob.public_key, fetch_timeout=1.0)


def invite(inviter_engine, invitee_engine, name):
    """Return the welcome rumor for a freshly created group."""
    _, welcomes = inviter_engine.create_group(name, [key_package_event(invitee_engine)])
    return welcomes[0]


class TestListWelcomes:
    @pytest.mark.asyncio
    async def test_lists_plain_and_gift_wrapped_newest_first(self, inbox, relay, alice, bob, carol, alice_engine, bob_engine):
        plain = welcome_event(alice, bob.public_key, invite(alice_engine, bob_engine, "plain"), created_at=100)
        wrapped = gift_wrap_event(
            carol, bob.public_key, invite(alice_engine, bob_engine, "wrapped"), alice.public_key, created_at=200
        )
        relay.add(plain, wrapped)

        welcomes = await inbox.list_welcomes()

        assert [w.event_id for w in welcomes] == [wrapped.id, plain.id]
        assert welcomes[0].is_gift_wrapped
        assert welcomes[0].sender == alice.public_key
        assert not welcomes[1].is_gift_wrapped
        assert welcomes[1].to_dict() == {
            "event_id": plain.id,
            "sender": alice.public_key,
            "from_npub": npub_for(alice.public_key),
            "created_at": 100,
            "is_gift_wrapped": False,
        }

    @pytest.mark.asyncio
    async def test_ignores_gift_wraps_that_are_not_welcomes(self, inbox, relay, alice, bob, carol):
        dm = gift_wrap_event(carol, bob.public_key, Rumor.build(alice.public_key, 14, "hi"), alice.public_key)
        sealed = sign_event(carol, 1059, "opaque", [["p", bob.public_key]])
        relay.add(dm, sealed)

        assert await inbox.list_welcomes() == []

    @pytest.mark.asyncio
    async def test_only_welcomes_addressed_to_us(self, inbox, relay, alice, carol, alice_engine, carol_engine):
        relay.add(welcome_event(alice, carol.public_key, invite(alice_engine, carol_engine, "theirs")))
        assert await inbox.list_welcomes() == []

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self, inbox, relay):
        relay.fail_with = TransportError("down")
        with pytest.raises(TransportError):
            await inbox.list_welcomes()


class TestAccept:
    @pytest.mark.asyncio
    async def test_accept_plain_welcome(self, inbox, relay, alice, bob, alice_engine, bob_engine):
        event = welcome_event(alice, bob.public_key, invite(alice_engine, bob_engine, "team"))
        relay.add(event)

        group = await inbox.accept(event.id)

        assert group.name == "team"
        assert bob_engine.get_groups() == [group]

    @pytest.mark.asyncio
    async def test_accept_gift_wrapped_welcome(self, inbox, relay, alice, bob, carol, alice_engine, bob_engine):
        event = gift_wrap_event(carol, bob.public_key, invite(alice_engine, bob_engine, "secret"), alice.public_key)
        relay.add(event)

        group = await inbox.accept(event.id)

        assert group.name == "secret"

    @pytest.mark.asyncio
    async def test_unknown_event(self, inbox):
        with pytest.raises(NotFoundError):
            await inbox.accept("f" * 64)

    @pytest.mark.asyncio
    async def test_event_that_is_not_a_welcome(self, inbox, relay, alice):
        note = sign_event(alice, 1, "just a note")
        relay.add(note)
        with pytest.raises(FormatError):
            await inbox.accept(note.id)
