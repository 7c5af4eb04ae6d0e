# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""SQLite-backed group-state engine.

Implements the GroupEngine contract with MLS-style primitives:
- KeyPackage: X25519 init key published ahead of time
- Welcome: group secrets encrypted to the invitee's init key
- Commit: new epoch secret encrypted under the current epoch key
- Application messages: AES-GCM under the epoch key, bound to the
  transport group id

There is no ratchet tree; every member holds the epoch secret directly.
State lives in one SQLite file and assumes a single writer.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..core.exceptions import EngineError
from ..transport.events import (
    KIND_GROUP_MESSAGE,
    KIND_KEY_PACKAGE,
    KIND_WELCOME,
    EventSigner,
    Rumor,
    TransportEvent,
    sign_event,
)
from .engine import (
    ApplicationMessage,
    CommitProcessed,
    DecryptionError,
    Group,
    GroupEngine,
    GroupNotFoundError,
    MessageProcessingResult,
    WelcomeDescriptor,
    WelcomeRejectedError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

MLS_PROTOCOL_VERSION = "1.0"
CIPHER_SUITE = "0x0001"
SECRET_SIZE = 32
NONCE_SIZE = 12
MAX_PROCESSED_MESSAGES = 10000

KDF_INFO_WELCOME_KEY = b"mdk-welcome-key"
KDF_INFO_ENCRYPTION_KEY = b"mdk-encryption-key"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS key_packages (
    id TEXT PRIMARY KEY,
    init_private BLOB NOT NULL,
    init_public BLOB NOT NULL,
    created_at INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS mls_groups (
    mls_group_id BLOB PRIMARY KEY,
    nostr_group_id BLOB NOT NULL UNIQUE,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    epoch INTEGER NOT NULL,
    members TEXT NOT NULL,
    epoch_secrets TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS pending_welcomes (
    event_id TEXT PRIMARY KEY,
    key_package_id TEXT NOT NULL,
    welcomer TEXT NOT NULL,
    group_info TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS processed_messages (
    event_id TEXT PRIMARY KEY,
    result TEXT NOT NULL
);
"""


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _unb64(data: str) -> bytes:
    return base64.b64decode(data.encode(), validate=True)


def _derive(secret: bytes, info: bytes) -> bytes:
    return HKDF(algorithm=hashes.SHA256(), length=SECRET_SIZE, salt=None, info=info).derive(secret)


def _decode_json_b64(content: str) -> dict[str, Any]:
    """Decode base64-wrapped JSON content. Raises ValueError on any failure."""
    try:
        data = json.loads(_unb64(content))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(str(e)) from e
    if not isinstance(data, dict):
        raise ValueError("payload is not an object")
    return data


@dataclass
class KeyPackageRef:
    """Public half of a key package, parsed from a kind 443 event."""

    id: str
    identity: str
    init_public_key: bytes
    event_id: str

    @classmethod
    def from_event(cls, event: TransportEvent) -> KeyPackageRef:
        if event.kind != KIND_KEY_PACKAGE:
            raise EngineError(f"Event {event.id} is not a key package", operation="key_package")
        try:
            data = _decode_json_b64(event.content)
            ref = cls(
                id=str(data["id"]),
                identity=str(data["identity"]),
                init_public_key=_unb64(data["init_public_key"]),
                event_id=event.id,
            )
        except (ValueError, KeyError, binascii.Error) as e:
            raise EngineError(f"Malformed key package {event.id}: {e}", operation="key_package") from e
        if ref.identity != event.pubkey:
            raise EngineError(f"Key package {event.id} identity does not match its author", operation="key_package")
        return ref


class LocalGroupEngine(GroupEngine):
    """Group engine persisted to a local SQLite database.

    Example:
        >>> engine = LocalGroupEngine(identity, "~/.mdk/state.db")
        >>> content, tags = engine.create_key_package(["wss://relay.damus.io"])
    """

    def __init__(
        self,
        signer: EventSigner,
        db_path: Path | str = ":memory:",
        max_processed_messages: int = MAX_PROCESSED_MESSAGES,
    ):
        """
        Initialize the engine.

        Args:
            signer: Identity used to sign group messages this engine creates
            db_path: SQLite database path (``:memory:`` for an ephemeral engine)
            max_processed_messages: Processed results kept for replay; older ones
                are dropped and would simply be decrypted again
        """
        self.signer = signer
        self.db_path = str(db_path)
        self.max_processed_messages = max_processed_messages
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # -------------------------------------------------------------------------
    # KEY PACKAGES
    # -------------------------------------------------------------------------

    def create_key_package(self, relays: list[str] | None = None) -> tuple[str, list[list[str]]]:
        init_private = X25519PrivateKey.generate()
        init_private_bytes = init_private.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        init_public_bytes = init_private.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        package_id = uuid.uuid4().hex

        with self._conn:
            self._conn.execute(
                "INSERT INTO key_packages (id, init_private, init_public, created_at) VALUES (?, ?, ?, strftime('%s','now'))",
                (package_id, init_private_bytes, init_public_bytes),
            )

        content = _b64(json.dumps({
            "id": package_id,
            "identity": self.signer.public_key,
            "init_public_key": _b64(init_public_bytes),
        }, sort_keys=True).encode())
        tags = [
            ["mls_protocol_version", MLS_PROTOCOL_VERSION],
            ["ciphersuite", CIPHER_SUITE],
        ]
        if relays:
            tags.append(["relays", *relays])
        return content, tags

    # -------------------------------------------------------------------------
    # GROUP CREATION (inviter side)
    # -------------------------------------------------------------------------

    def create_group(
        self,
        name: str,
        key_package_events: list[TransportEvent],
        description: str = "",
    ) -> tuple[Group, list[Rumor]]:
        """Create a group and welcome the owners of the given key packages.

        Args:
            name: Group name
            key_package_events: Kind 443 events of the members to invite
            description: Optional description

        Returns:
            Tuple of (group, welcome rumors to deliver to each invitee)
        """
        packages = [KeyPackageRef.from_event(ev) for ev in key_package_events]
        members = [self.signer.public_key]
        for pkg in packages:
            if pkg.identity not in members:
                members.append(pkg.identity)

        mls_group_id = os.urandom(SECRET_SIZE)
        nostr_group_id = os.urandom(SECRET_SIZE)
        epoch_secret = os.urandom(SECRET_SIZE)

        with self._conn:
            self._conn.execute(
                "INSERT INTO mls_groups (mls_group_id, nostr_group_id, name, description, epoch, members, epoch_secrets) "
                "VALUES (?, ?, ?, ?, 0, ?, ?)",
                (mls_group_id, nostr_group_id, name, description, json.dumps(members), json.dumps({"0": epoch_secret.hex()})),
            )

        group = self._require_group(mls_group_id, "create_group")
        welcomes = [self._build_welcome(mls_group_id, pkg) for pkg in packages]
        logger.info(f"Created group {nostr_group_id.hex()[:16]} with {len(members)} members")
        return group, welcomes

    def add_members(
        self,
        mls_group_id: bytes,
        key_package_events: list[TransportEvent],
    ) -> tuple[TransportEvent, list[Rumor]]:
        """Add members, advancing the epoch.

        Returns:
            Tuple of (commit event for existing members, welcome rumors for new members)
        """
        row = self._group_row(mls_group_id)
        if row is None:
            raise GroupNotFoundError(mls_group_id.hex(), "add_members")

        packages = [KeyPackageRef.from_event(ev) for ev in key_package_events]
        members = json.loads(row["members"])
        added = [pkg.identity for pkg in packages if pkg.identity not in members]
        new_epoch = row["epoch"] + 1
        new_secret = os.urandom(SECRET_SIZE)

        commit = self._seal(row, {
            "type": "commit",
            "epoch": new_epoch,
            "epoch_secret": new_secret.hex(),
            "members": members + added,
            "added": added,
        })

        self._apply_epoch(row, new_epoch, new_secret, members + added)
        self._remember(commit.id, {"type": "commit", "mls_group_id": mls_group_id.hex(), "epoch": new_epoch, "added": added})

        welcomes = [self._build_welcome(mls_group_id, pkg) for pkg in packages]
        return commit, welcomes

    def _build_welcome(self, mls_group_id: bytes, pkg: KeyPackageRef) -> Rumor:
        row = self._group_row(mls_group_id)
        assert row is not None
        secrets_by_epoch = json.loads(row["epoch_secrets"])
        group_info = {
            "mls_group_id": bytes(row["mls_group_id"]).hex(),
            "nostr_group_id": bytes(row["nostr_group_id"]).hex(),
            "name": row["name"],
            "description": row["description"],
            "epoch": row["epoch"],
            "epoch_secret": secrets_by_epoch[str(row["epoch"])],
            "members": json.loads(row["members"]),
        }

        ephemeral = X25519PrivateKey.generate()
        shared = ephemeral.exchange(X25519PublicKey.from_public_bytes(pkg.init_public_key))
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(_derive(shared, KDF_INFO_WELCOME_KEY)).encrypt(
            nonce,
            json.dumps(group_info, sort_keys=True).encode(),
            pkg.id.encode(),
        )
        payload = {
            "key_package_id": pkg.id,
            "ephemeral_public_key": _b64(ephemeral.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )),
            "nonce": _b64(nonce),
            "ciphertext": _b64(ciphertext),
        }
        return Rumor.build(
            self.signer.public_key,
            KIND_WELCOME,
            _b64(json.dumps(payload, sort_keys=True).encode()),
            tags=[["e", pkg.event_id], ["p", pkg.identity]],
        )

    # -------------------------------------------------------------------------
    # WELCOMES (invitee side)
    # -------------------------------------------------------------------------

    def process_welcome(self, event_id: str, rumor: Rumor) -> WelcomeDescriptor:
        if rumor.kind != KIND_WELCOME:
            raise WelcomeRejectedError(f"Rumor kind {rumor.kind} is not a welcome")

        try:
            payload = _decode_json_b64(rumor.content)
            key_package_id = str(payload["key_package_id"])
            ephemeral_public = _unb64(payload["ephemeral_public_key"])
            nonce = _unb64(payload["nonce"])
            ciphertext = _unb64(payload["ciphertext"])
        except (ValueError, KeyError, binascii.Error) as e:
            raise WelcomeRejectedError(f"Malformed welcome: {e}") from e

        row = self._conn.execute(
            "SELECT init_private FROM key_packages WHERE id = ?", (key_package_id,)
        ).fetchone()
        if row is None:
            raise WelcomeRejectedError(f"No key package {key_package_id} for this welcome")

        try:
            shared = X25519PrivateKey.from_private_bytes(row["init_private"]).exchange(
                X25519PublicKey.from_public_bytes(ephemeral_public)
            )
            plaintext = AESGCM(_derive(shared, KDF_INFO_WELCOME_KEY)).decrypt(nonce, ciphertext, key_package_id.encode())
            group_info = json.loads(plaintext)
        except (InvalidTag, ValueError) as e:
            raise WelcomeRejectedError(f"Could not decrypt welcome: {e}") from e

        members = group_info.get("members", [])
        if self.signer.public_key not in members:
            raise WelcomeRejectedError("Welcome does not include the local identity")

        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO pending_welcomes (event_id, key_package_id, welcomer, group_info) VALUES (?, ?, ?, ?)",
                (event_id, key_package_id, rumor.pubkey, json.dumps(group_info)),
            )

        return WelcomeDescriptor(
            event_id=event_id,
            mls_group_id=bytes.fromhex(group_info["mls_group_id"]),
            nostr_group_id=bytes.fromhex(group_info["nostr_group_id"]),
            group_name=group_info["name"],
            member_count=len(members),
            welcomer=rumor.pubkey,
        )

    def accept_welcome(self, descriptor: WelcomeDescriptor) -> None:
        row = self._conn.execute(
            "SELECT key_package_id, group_info FROM pending_welcomes WHERE event_id = ?",
            (descriptor.event_id,),
        ).fetchone()
        if row is None:
            raise WelcomeRejectedError(f"Welcome {descriptor.event_id} has not been processed")

        info = json.loads(row["group_info"])
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO mls_groups (mls_group_id, nostr_group_id, name, description, epoch, members, epoch_secrets) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    bytes.fromhex(info["mls_group_id"]),
                    bytes.fromhex(info["nostr_group_id"]),
                    info["name"],
                    info.get("description", ""),
                    int(info["epoch"]),
                    json.dumps(info["members"]),
                    json.dumps({str(info["epoch"]): info["epoch_secret"]}),
                ),
            )
            self._conn.execute("DELETE FROM pending_welcomes WHERE event_id = ?", (descriptor.event_id,))
            self._conn.execute("DELETE FROM key_packages WHERE id = ?", (row["key_package_id"],))
        logger.info(f"Joined group {info['nostr_group_id'][:16]} ({info['name']})")

    # -------------------------------------------------------------------------
    # GROUPS
    # -------------------------------------------------------------------------

    def get_groups(self) -> list[Group]:
        rows = self._conn.execute("SELECT * FROM mls_groups ORDER BY name").fetchall()
        return [self._to_group(row) for row in rows]

    def _group_row(self, mls_group_id: bytes) -> sqlite3.Row | None:
        return self._conn.execute(
            "SELECT * FROM mls_groups WHERE mls_group_id = ?", (mls_group_id,)
        ).fetchone()

    def _require_group(self, mls_group_id: bytes, operation: str) -> Group:
        row = self._group_row(mls_group_id)
        if row is None:
            raise GroupNotFoundError(mls_group_id.hex(), operation)
        return self._to_group(row)

    @staticmethod
    def _to_group(row: sqlite3.Row) -> Group:
        return Group(
            mls_group_id=bytes(row["mls_group_id"]),
            nostr_group_id=bytes(row["nostr_group_id"]),
            name=row["name"],
            description=row["description"],
            member_count=len(json.loads(row["members"])),
            epoch=row["epoch"],
        )

    def _apply_epoch(self, row: sqlite3.Row, epoch: int, secret: bytes, members: list[str]) -> None:
        secrets_by_epoch = json.loads(row["epoch_secrets"])
        secrets_by_epoch[str(epoch)] = secret.hex()
        with self._conn:
            self._conn.execute(
                "UPDATE mls_groups SET epoch = ?, members = ?, epoch_secrets = ? WHERE mls_group_id = ?",
                (epoch, json.dumps(members), json.dumps(secrets_by_epoch), row["mls_group_id"]),
            )

    # -------------------------------------------------------------------------
    # MESSAGES
    # -------------------------------------------------------------------------

    def create_message(self, mls_group_id: bytes, rumor: Rumor) -> TransportEvent:
        row = self._group_row(mls_group_id)
        if row is None:
            raise GroupNotFoundError(mls_group_id.hex(), "create_message")

        event = self._seal(row, {"type": "application", "rumor": rumor.to_dict()})
        message = ApplicationMessage(
            event_id=event.id,
            sender=rumor.pubkey,
            mls_group_id=bytes(row["mls_group_id"]),
            nostr_group_id=bytes(row["nostr_group_id"]),
            content=rumor.content,
            created_at=event.created_at,
            kind=rumor.kind,
        )
        self._remember(event.id, {"type": "application", "message": message.to_dict()})
        return event

    def process_message(self, event: TransportEvent) -> MessageProcessingResult:
        if event.kind != KIND_GROUP_MESSAGE:
            raise DecryptionError(f"Event kind {event.kind} is not a group message")

        cached = self._conn.execute(
            "SELECT result FROM processed_messages WHERE event_id = ?", (event.id,)
        ).fetchone()
        if cached is not None:
            return self._restore(event.id, json.loads(cached["result"]))

        group_id_hex = event.group_id
        if not group_id_hex:
            raise DecryptionError(f"Event {event.id} has no group tag")
        try:
            nostr_group_id = bytes.fromhex(group_id_hex)
        except ValueError as e:
            raise DecryptionError(f"Event {event.id} has a malformed group tag") from e

        row = self._conn.execute(
            "SELECT * FROM mls_groups WHERE nostr_group_id = ?", (nostr_group_id,)
        ).fetchone()
        if row is None:
            raise GroupNotFoundError(group_id_hex, "process_message")

        payload = self._open(row, event)
        payload_type = payload.get("type")

        if payload_type == "application":
            rumor = Rumor.from_dict(payload["rumor"])
            message = ApplicationMessage(
                event_id=event.id,
                sender=rumor.pubkey,
                mls_group_id=bytes(row["mls_group_id"]),
                nostr_group_id=nostr_group_id,
                content=rumor.content,
                created_at=event.created_at,
                kind=rumor.kind,
            )
            self._remember(event.id, {"type": "application", "message": message.to_dict()})
            return message

        if payload_type == "commit":
            new_epoch = int(payload["epoch"])
            if new_epoch > row["epoch"]:
                self._apply_epoch(row, new_epoch, bytes.fromhex(payload["epoch_secret"]), list(payload["members"]))
            record = {
                "type": "commit",
                "mls_group_id": bytes(row["mls_group_id"]).hex(),
                "epoch": new_epoch,
                "added": list(payload.get("added", [])),
            }
            self._remember(event.id, record)
            return self._restore(event.id, record)

        raise DecryptionError(f"Unknown payload type in {event.id}: {payload_type}")

    def _seal(self, row: sqlite3.Row, payload: dict[str, Any]) -> TransportEvent:
        """Encrypt a payload under the group's current epoch key."""
        epoch = row["epoch"]
        secret = bytes.fromhex(json.loads(row["epoch_secrets"])[str(epoch)])
        nostr_group_id = bytes(row["nostr_group_id"])

        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(_derive(secret, KDF_INFO_ENCRYPTION_KEY)).encrypt(
            nonce,
            json.dumps(payload, sort_keys=True).encode(),
            nostr_group_id,
        )
        content = _b64(json.dumps({
            "epoch": epoch,
            "nonce": _b64(nonce),
            "ciphertext": _b64(ciphertext),
        }, sort_keys=True).encode())
        return sign_event(self.signer, KIND_GROUP_MESSAGE, content, [["h", nostr_group_id.hex()]])

    def _open(self, row: sqlite3.Row, event: TransportEvent) -> dict[str, Any]:
        """Decrypt a group message with the secret of the epoch it names."""
        try:
            envelope = _decode_json_b64(event.content)
            epoch = int(envelope["epoch"])
            nonce = _unb64(envelope["nonce"])
            ciphertext = _unb64(envelope["ciphertext"])
        except (ValueError, KeyError, binascii.Error) as e:
            raise DecryptionError(f"Malformed group message {event.id}: {e}") from e

        secret_hex = json.loads(row["epoch_secrets"]).get(str(epoch))
        if secret_hex is None:
            raise DecryptionError(f"No secret for epoch {epoch} in group {bytes(row['nostr_group_id']).hex()[:16]}")

        try:
            plaintext = AESGCM(_derive(bytes.fromhex(secret_hex), KDF_INFO_ENCRYPTION_KEY)).decrypt(
                nonce, ciphertext, bytes(row["nostr_group_id"])
            )
            payload = json.loads(plaintext)
        except (InvalidTag, ValueError) as e:
            raise DecryptionError(f"Could not decrypt {event.id}: {e}") from e
        if not isinstance(payload, dict):
            raise DecryptionError(f"Decrypted payload of {event.id} is not an object")
        return payload

    def _remember(self, event_id: str, record: dict[str, Any]) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO processed_messages (event_id, result) VALUES (?, ?)",
                (event_id, json.dumps(record)),
            )
            # rowid follows insertion order; keep the newest entries only
            self._conn.execute(
                "DELETE FROM processed_messages WHERE rowid NOT IN "
                "(SELECT rowid FROM processed_messages ORDER BY rowid DESC LIMIT ?)",
                (self.max_processed_messages,),
            )

    @staticmethod
    def _restore(event_id: str, record: dict[str, Any]) -> MessageProcessingResult:
        if record["type"] == "application":
            return ApplicationMessage.from_dict(record["message"])
        return CommitProcessed(
            event_id=event_id,
            mls_group_id=bytes.fromhex(record["mls_group_id"]),
            epoch=int(record["epoch"]),
            added=list(record.get("added", [])),
        )
