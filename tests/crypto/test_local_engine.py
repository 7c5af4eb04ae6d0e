"""Tests for the SQLite-backed group engine.

These tests drive two or three engines against each other: one creates a
group and welcomes the others, then messages and commits flow between them.
"""

from __future__ import annotations

import base64
import json

import pytest
from helpers import join_group, key_package_event, welcome_event

from mdkcli.core.exceptions import EngineError
from mdkcli.crypto.engine import (
    ApplicationMessage,
    CommitProcessed,
    DecryptionError,
    GroupNotFoundError,
    WelcomeRejectedError,
)
from mdkcli.crypto.local import CIPHER_SUITE, MLS_PROTOCOL_VERSION, KeyPackageRef, LocalGroupEngine
from mdkcli.transport.events import KIND_GROUP_MESSAGE, KIND_WELCOME, Rumor, sign_event


def _decode(content: str) -> dict:
    return json.loads(base64.b64decode(content))


# =============================================================================
# Key packages
# =============================================================================


class TestKeyPackages:
    def test_content_and_tags(self, bob, bob_engine):
        content, tags = bob_engine.create_key_package(["wss://a.example", "wss://b.example"])

        data = _decode(content)
        assert data["identity"] == bob.public_key
        assert len(base64.b64decode(data["init_public_key"])) == 32
        assert ["mls_protocol_version", MLS_PROTOCOL_VERSION] in tags
        assert ["ciphersuite", CIPHER_SUITE] in tags
        assert ["relays", "wss://a.example", "wss://b.example"] in tags

    def test_no_relays_tag_without_relays(self, bob_engine):
        _, tags = bob_engine.create_key_package()
        assert all(tag[0] != "relays" for tag in tags)

    def test_ref_rejects_foreign_identity(self, alice, bob_engine):
        content, tags = bob_engine.create_key_package()
        forged = sign_event(alice, 443, content, tags)
        with pytest.raises(EngineError):
            KeyPackageRef.from_event(forged)

    def test_ref_rejects_wrong_kind(self, bob, bob_engine):
        content, tags = bob_engine.create_key_package()
        with pytest.raises(EngineError):
            KeyPackageRef.from_event(sign_event(bob, 1, content, tags))


# =============================================================================
# Group creation and welcomes
# =============================================================================


class TestWelcomeFlow:
    def test_create_group(self, alice, alice_engine, bob_engine):
        kp = key_package_event(bob_engine)

        group, welcomes = alice_engine.create_group("team", [kp], description="our chat")

        assert group.name == "team"
        assert group.description == "our chat"
        assert group.member_count == 2
        assert group.epoch == 0
        assert len(group.nostr_group_id) == 32
        assert alice_engine.get_groups() == [group]

        assert len(welcomes) == 1
        assert welcomes[0].kind == KIND_WELCOME
        assert welcomes[0].pubkey == alice.public_key
        assert welcomes[0].tag_values("e") == [kp.id]

    def test_process_then_accept(self, alice, bob, alice_engine, bob_engine):
        kp = key_package_event(bob_engine)
        group, welcomes = alice_engine.create_group("team", [kp])
        event = welcome_event(alice, bob.public_key, welcomes[0])

        descriptor = bob_engine.process_welcome(event.id, welcomes[0])

        assert descriptor.event_id == event.id
        assert descriptor.group_name == "team"
        assert descriptor.member_count == 2
        assert descriptor.welcomer == alice.public_key
        assert descriptor.nostr_group_id == group.nostr_group_id
        # Processing alone does not join
        assert bob_engine.get_groups() == []

        bob_engine.accept_welcome(descriptor)

        joined = bob_engine.get_groups()
        assert len(joined) == 1
        assert joined[0].nostr_group_id == group.nostr_group_id
        assert joined[0].mls_group_id == group.mls_group_id

    def test_key_package_is_consumed(self, alice, bob, alice_engine, bob_engine):
        kp = key_package_event(bob_engine)
        _, welcomes = alice_engine.create_group("team", [kp])
        event = welcome_event(alice, bob.public_key, welcomes[0])
        bob_engine.accept_welcome(bob_engine.process_welcome(event.id, welcomes[0]))

        with pytest.raises(WelcomeRejectedError):
            bob_engine.process_welcome(event.id, welcomes[0])

    def test_welcome_for_someone_else(self, alice_engine, bob_engine, carol_engine):
        kp = key_package_event(bob_engine)
        _, welcomes = alice_engine.create_group("team", [kp])

        with pytest.raises(WelcomeRejectedError):
            carol_engine.process_welcome("e" * 64, welcomes[0])

    def test_wrong_rumor_kind(self, bob, bob_engine):
        rumor = Rumor.build(bob.public_key, 9, "hello")
        with pytest.raises(WelcomeRejectedError):
            bob_engine.process_welcome("e" * 64, rumor)

    def test_garbage_welcome_content(self, alice, bob_engine):
        rumor = Rumor.build(alice.public_key, KIND_WELCOME, "not base64 at all!")
        with pytest.raises(WelcomeRejectedError):
            bob_engine.process_welcome("e" * 64, rumor)

    def test_accept_without_process(self, alice_engine, bob_engine):
        kp = key_package_event(bob_engine)
        _, welcomes = alice_engine.create_group("team", [kp])
        descriptor = bob_engine.process_welcome("a" * 64, welcomes[0])
        descriptor.event_id = "b" * 64

        with pytest.raises(WelcomeRejectedError):
            bob_engine.accept_welcome(descriptor)


# =============================================================================
# Messages
# =============================================================================


class TestMessages:
    def test_round_trip(self, alice, alice_engine, bob_engine):
        group = join_group(alice_engine, bob_engine)
        rumor = Rumor.build(alice.public_key, 9, "hello bob")

        event = alice_engine.create_message(group.mls_group_id, rumor)
        result = bob_engine.process_message(event)

        assert event.kind == KIND_GROUP_MESSAGE
        assert event.group_id == group.nostr_group_id.hex()
        assert isinstance(result, ApplicationMessage)
        assert result.sender == alice.public_key
        assert result.content == "hello bob"
        assert result.created_at == event.created_at
        assert result.nostr_group_id == group.nostr_group_id

    def test_content_is_encrypted(self, alice, alice_engine, bob_engine):
        group = join_group(alice_engine, bob_engine)
        event = alice_engine.create_message(group.mls_group_id, Rumor.build(alice.public_key, 9, "secret words"))
        assert "secret words" not in base64.b64decode(event.content).decode()

    def test_reprocessing_is_idempotent(self, alice, alice_engine, bob_engine):
        group = join_group(alice_engine, bob_engine)
        event = alice_engine.create_message(group.mls_group_id, Rumor.build(alice.public_key, 9, "once"))

        first = bob_engine.process_message(event)
        second = bob_engine.process_message(event)

        assert first == second

    def test_sender_sees_own_message(self, alice, alice_engine, bob_engine):
        group = join_group(alice_engine, bob_engine)
        event = alice_engine.create_message(group.mls_group_id, Rumor.build(alice.public_key, 9, "mine"))

        result = alice_engine.process_message(event)

        assert isinstance(result, ApplicationMessage)
        assert result.content == "mine"

    def test_unknown_group(self, alice, alice_engine, bob_engine, carol_engine):
        group = join_group(alice_engine, bob_engine)
        event = alice_engine.create_message(group.mls_group_id, Rumor.build(alice.public_key, 9, "x"))

        with pytest.raises(GroupNotFoundError):
            carol_engine.process_message(event)

    def test_wrong_kind(self, alice, bob_engine):
        with pytest.raises(DecryptionError):
            bob_engine.process_message(sign_event(alice, 9, "x", [["h", "00" * 32]]))

    def test_missing_group_tag(self, alice, bob_engine):
        with pytest.raises(DecryptionError):
            bob_engine.process_message(sign_event(alice, KIND_GROUP_MESSAGE, "x"))

    def test_malformed_group_tag(self, alice, bob_engine):
        with pytest.raises(DecryptionError, match="malformed group tag") as exc_info:
            bob_engine.process_message(sign_event(alice, KIND_GROUP_MESSAGE, "x", [["h", "zz" * 32]]))
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_processed_cache_keeps_newest(self, alice, bob, alice_engine):
        engine = LocalGroupEngine(bob, max_processed_messages=2)
        try:
            group = join_group(alice_engine, engine)
            events = [
                alice_engine.create_message(group.mls_group_id, Rumor.build(alice.public_key, 9, text))
                for text in ("one", "two", "three")
            ]
            for event in events:
                engine.process_message(event)

            rows = engine._conn.execute("SELECT event_id FROM processed_messages").fetchall()
            assert sorted(r["event_id"] for r in rows) == sorted(e.id for e in events[1:])
            # Evicted events are decrypted again
            assert engine.process_message(events[0]).content == "one"
        finally:
            engine.close()

    def test_garbage_content(self, alice, alice_engine, bob_engine):
        group = join_group(alice_engine, bob_engine)
        event = sign_event(alice, KIND_GROUP_MESSAGE, "!!!", [["h", group.nostr_group_id.hex()]])

        with pytest.raises(DecryptionError):
            bob_engine.process_message(event)

    def test_unknown_epoch(self, alice, alice_engine, bob_engine):
        group = join_group(alice_engine, bob_engine)
        content = base64.b64encode(json.dumps({"epoch": 7, "nonce": "AAAA", "ciphertext": "AAAA"}).encode()).decode()
        event = sign_event(alice, KIND_GROUP_MESSAGE, content, [["h", group.nostr_group_id.hex()]])

        with pytest.raises(DecryptionError, match="epoch 7"):
            bob_engine.process_message(event)

    def test_ciphertext_from_other_group(self, alice, alice_engine, bob_engine):
        first = join_group(alice_engine, bob_engine, name="first")
        second = join_group(alice_engine, bob_engine, name="second")
        event = alice_engine.create_message(first.mls_group_id, Rumor.build(alice.public_key, 9, "x"))
        moved = sign_event(alice, KIND_GROUP_MESSAGE, event.content, [["h", second.nostr_group_id.hex()]])

        with pytest.raises(DecryptionError):
            bob_engine.process_message(moved)

    def test_create_message_unknown_group(self, alice, alice_engine):
        with pytest.raises(GroupNotFoundError):
            alice_engine.create_message(b"\x00" * 32, Rumor.build(alice.public_key, 9, "x"))


# =============================================================================
# Commits
# =============================================================================


class TestAddMembers:
    def test_existing_member_processes_commit(self, alice_engine, bob_engine, carol_engine):
        group = join_group(alice_engine, bob_engine)
        kp = key_package_event(carol_engine)

        commit, welcomes = alice_engine.add_members(group.mls_group_id, [kp])
        result = bob_engine.process_message(commit)

        assert isinstance(result, CommitProcessed)
        assert result.epoch == 1
        assert result.added == [carol_engine.signer.public_key]
        bob_group = bob_engine.find_group(group.nostr_group_id)
        assert bob_group.epoch == 1
        assert bob_group.member_count == 3
        assert len(welcomes) == 1

    def test_new_member_can_talk_to_everyone(self, carol, alice_engine, bob_engine, carol_engine):
        group = join_group(alice_engine, bob_engine)
        commit, welcomes = alice_engine.add_members(group.mls_group_id, [key_package_event(carol_engine)])
        bob_engine.process_message(commit)

        event = welcome_event(alice_engine.signer, carol.public_key, welcomes[0])
        carol_engine.accept_welcome(carol_engine.process_welcome(event.id, welcomes[0]))
        assert carol_engine.find_group(group.nostr_group_id).epoch == 1

        message = carol_engine.create_message(group.mls_group_id, Rumor.build(carol.public_key, 9, "hi all"))
        assert bob_engine.process_message(message).content == "hi all"
        assert alice_engine.process_message(message).content == "hi all"

    def test_old_epoch_messages_still_decrypt(self, alice, alice_engine, bob_engine, carol_engine):
        group = join_group(alice_engine, bob_engine)
        old = alice_engine.create_message(group.mls_group_id, Rumor.build(alice.public_key, 9, "before"))
        commit, _ = alice_engine.add_members(group.mls_group_id, [key_package_event(carol_engine)])
        bob_engine.process_message(commit)

        assert bob_engine.process_message(old).content == "before"

    def test_unknown_group(self, alice_engine, carol_engine):
        with pytest.raises(GroupNotFoundError):
            alice_engine.add_members(b"\x01" * 32, [key_package_event(carol_engine)])


# =============================================================================
# Persistence
# =============================================================================


def test_state_survives_reopen(tmp_path, alice, bob):
    db_path = tmp_path / "bob.db"
    alice_engine = LocalGroupEngine(alice)
    bob_engine = LocalGroupEngine(bob, db_path)
    group = join_group(alice_engine, bob_engine)
    event = alice_engine.create_message(group.mls_group_id, Rumor.build(alice.public_key, 9, "later"))
    bob_engine.close()

    reopened = LocalGroupEngine(bob, db_path)
    try:
        assert [g.nostr_group_id for g in reopened.get_groups()] == [group.nostr_group_id]
        assert reopened.process_message(event).content == "later"
    finally:
        reopened.close()
        alice_engine.close()
