# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Group-state engine abstraction.

The engine owns all cryptographic group state: key packages, welcomes,
group membership and message encryption. The sync layer only talks to it
through the contract defined here, so any implementation can be
substituted:

- LocalGroupEngine: SQLite-backed engine built from MLS-style primitives
- Any binding to a real MLS library that honours the same contract

Welcome handling is deliberately two calls: ``process_welcome`` validates
and returns a descriptor that can be inspected, ``accept_welcome`` commits
the join.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..core.exceptions import EngineError
from ..transport.events import Rumor, TransportEvent


# =============================================================================
# Exceptions
# =============================================================================


class GroupNotFoundError(EngineError):
    """Raised when a group id is not known to the engine."""

    def __init__(self, group_id: str, operation: str | None = None):
        super().__init__(f"Group not found: {group_id}", operation=operation)
        self.group_id = group_id


class WelcomeRejectedError(EngineError):
    """Raised when a welcome cannot be processed or accepted."""

    def __init__(self, message: str):
        super().__init__(message, operation="welcome")


class DecryptionError(EngineError):
    """Raised when a group message cannot be decrypted."""

    def __init__(self, message: str):
        super().__init__(message, operation="process_message")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class Group:
    """A group the local identity is a member of.

    Attributes:
        mls_group_id: Engine-internal session group id
        nostr_group_id: Public transport group id (32 bytes, hex displayed)
        name: Human-readable name
        description: Optional description
        member_count: Number of members at the current epoch
        epoch: Current epoch
    """

    mls_group_id: bytes
    nostr_group_id: bytes
    name: str
    description: str = ""
    member_count: int = 0
    epoch: int = 0

    @property
    def nostr_group_id_hex(self) -> str:
        return self.nostr_group_id.hex()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for output."""
        return {
            "nostr_group_id": self.nostr_group_id.hex(),
            "mls_group_id": self.mls_group_id.hex(),
            "name": self.name,
            "description": self.description,
            "member_count": self.member_count,
            "epoch": self.epoch,
        }


@dataclass
class WelcomeDescriptor:
    """Result of processing a welcome. Consumed by ``accept_welcome``."""

    event_id: str
    mls_group_id: bytes
    nostr_group_id: bytes
    group_name: str
    member_count: int
    welcomer: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "mls_group_id": self.mls_group_id.hex(),
            "nostr_group_id": self.nostr_group_id.hex(),
            "group_name": self.group_name,
            "member_count": self.member_count,
            "welcomer": self.welcomer,
        }


@dataclass
class ApplicationMessage:
    """A decrypted application message."""

    event_id: str
    sender: str
    mls_group_id: bytes
    nostr_group_id: bytes
    content: str
    created_at: int
    kind: int = 9

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "sender": self.sender,
            "mls_group_id": self.mls_group_id.hex(),
            "nostr_group_id": self.nostr_group_id.hex(),
            "content": self.content,
            "created_at": self.created_at,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApplicationMessage:
        return cls(
            event_id=data["event_id"],
            sender=data["sender"],
            mls_group_id=bytes.fromhex(data["mls_group_id"]),
            nostr_group_id=bytes.fromhex(data["nostr_group_id"]),
            content=data["content"],
            created_at=int(data["created_at"]),
            kind=int(data.get("kind", 9)),
        )


@dataclass
class CommitProcessed:
    """A membership change was applied; the group advanced an epoch."""

    event_id: str
    mls_group_id: bytes
    epoch: int
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


MessageProcessingResult = ApplicationMessage | CommitProcessed


# =============================================================================
# Abstract Engine
# =============================================================================


class GroupEngine(ABC):
    """Abstract interface for group-state operations.

    All calls are synchronous. An engine instance owns its persisted store
    and must not be driven from two flows at once.
    """

    @abstractmethod
    def create_key_package(self, relays: list[str] | None = None) -> tuple[str, list[list[str]]]:
        """Create a key package for publishing.

        Args:
            relays: Relays the key package advertises

        Returns:
            Tuple of (event content, event tags)
        """
        pass

    @abstractmethod
    def process_welcome(self, event_id: str, rumor: Rumor) -> WelcomeDescriptor:
        """Validate a welcome rumor against local key material.

        Args:
            event_id: Id of the event that carried the welcome
            rumor: The unsigned welcome record

        Returns:
            Descriptor of the group that would be joined

        Raises:
            EngineError: If the welcome is rejected
        """
        pass

    @abstractmethod
    def accept_welcome(self, descriptor: WelcomeDescriptor) -> None:
        """Commit a previously processed welcome, materialising the group.

        Raises:
            EngineError: If the welcome was not processed or cannot be accepted
        """
        pass

    @abstractmethod
    def get_groups(self) -> list[Group]:
        """Get all groups the local identity belongs to."""
        pass

    @abstractmethod
    def process_message(self, event: TransportEvent) -> MessageProcessingResult:
        """Process a group message event.

        Returns:
            An ApplicationMessage, or a control variant such as CommitProcessed

        Raises:
            EngineError: If the message cannot be processed
        """
        pass

    @abstractmethod
    def create_message(self, mls_group_id: bytes, rumor: Rumor) -> TransportEvent:
        """Encrypt ``rumor`` for a group and return the signed event.

        Raises:
            EngineError: If the group is unknown or encryption fails
        """
        pass

    def find_group(self, nostr_group_id: bytes) -> Group | None:
        """Look up a group by transport group id."""
        for group in self.get_groups():
            if group.nostr_group_id == nostr_group_id:
                return group
        return None
