# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Relay event model.

Signed events, unsigned inner records (rumors) and subscription filters,
in the shape relays speak on the wire (NIP-01).

Event ids are the sha256 of the compact JSON array
``[0, pubkey, created_at, kind, tags, content]``.
"""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..core.exceptions import FormatError

# =============================================================================
# Kinds
# =============================================================================

KIND_CHAT = 9
KIND_KEY_PACKAGE = 443
KIND_WELCOME = 444
KIND_GROUP_MESSAGE = 445
KIND_GIFT_WRAP = 1059

# Tag carrying the transport group id on group messages
GROUP_TAG = "h"


def now() -> int:
    """Current unix time in whole seconds."""
    return int(time.time())


def compute_event_id(pubkey: str, created_at: int, kind: int, tags: list[list[str]], content: str) -> str:
    """Compute the canonical event id."""
    serialized = json.dumps(
        [0, pubkey, created_at, kind, tags, content],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def _tag_values(tags: list[list[str]], name: str) -> list[str]:
    return [tag[1] for tag in tags if len(tag) >= 2 and tag[0] == name]


@runtime_checkable
class EventSigner(Protocol):
    """Anything that can sign event ids on behalf of a public key."""

    @property
    def public_key(self) -> str:
        """Hex x-only public key."""
        ...

    def sign(self, event_id: str) -> str:
        """Return a hex signature over the given event id."""
        ...


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class TransportEvent:
    """A signed relay event. Immutable once fetched."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = field(default_factory=list)
    content: str = ""
    sig: str = ""

    def tag_values(self, name: str) -> list[str]:
        """All values of tags with the given name."""
        return _tag_values(self.tags, name)

    def first_tag(self, name: str) -> str | None:
        """First value of the named tag, or None."""
        values = self.tag_values(name)
        return values[0] if values else None

    @property
    def group_id(self) -> str | None:
        """Transport group id from the ``h`` tag, if any."""
        return self.first_tag(GROUP_TAG)

    def verify_id(self) -> bool:
        """Check that the id matches the event's content."""
        return self.id == compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire dictionary."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransportEvent:
        """Create from the wire dictionary.

        Raises:
            FormatError: If required fields are missing or mistyped
        """
        try:
            return cls(
                id=str(data["id"]),
                pubkey=str(data["pubkey"]),
                created_at=int(data["created_at"]),
                kind=int(data["kind"]),
                tags=[[str(v) for v in tag] for tag in data.get("tags", [])],
                content=str(data.get("content", "")),
                sig=str(data.get("sig", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise FormatError(f"Malformed event: {e}", event_id=data.get("id") if isinstance(data, dict) else None)

    @classmethod
    def from_json(cls, raw: str) -> TransportEvent:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise FormatError(f"Event is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise FormatError("Event JSON is not an object")
        return cls.from_dict(data)


@dataclass
class Rumor:
    """An unsigned inner record carried in a gift-wrap or welcome content."""

    pubkey: str
    created_at: int
    kind: int
    tags: list[list[str]] = field(default_factory=list)
    content: str = ""
    id: str | None = None

    def __post_init__(self) -> None:
        if self.id is None:
            self.id = compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def tag_values(self, name: str) -> list[str]:
        return _tag_values(self.tags, name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def build(cls, pubkey: str, kind: int, content: str, tags: list[list[str]] | None = None) -> Rumor:
        """Build a rumor stamped with the current time."""
        return cls(pubkey=pubkey, created_at=now(), kind=kind, tags=tags or [], content=content)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rumor:
        try:
            return cls(
                pubkey=str(data["pubkey"]),
                created_at=int(data["created_at"]),
                kind=int(data["kind"]),
                tags=[[str(v) for v in tag] for tag in data.get("tags", [])],
                content=str(data.get("content", "")),
                id=str(data["id"]) if data.get("id") else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise FormatError(f"Malformed rumor: {e}")

    @classmethod
    def from_json(cls, raw: str) -> Rumor:
        """Parse a rumor from JSON.

        Raises:
            FormatError: If the JSON is unparseable or not a rumor
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise FormatError(f"Rumor is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise FormatError("Rumor JSON is not an object")
        return cls.from_dict(data)


def sign_event(
    signer: EventSigner,
    kind: int,
    content: str,
    tags: list[list[str]] | None = None,
    created_at: int | None = None,
) -> TransportEvent:
    """Build and sign an event as ``signer``."""
    tags = tags or []
    created_at = now() if created_at is None else created_at
    event_id = compute_event_id(signer.public_key, created_at, kind, tags, content)
    return TransportEvent(
        id=event_id,
        pubkey=signer.public_key,
        created_at=created_at,
        kind=kind,
        tags=tags,
        content=content,
        sig=signer.sign(event_id),
    )


# =============================================================================
# Filters
# =============================================================================


@dataclass
class Filter:
    """A relay subscription filter.

    ``since`` and ``until`` are inclusive. Tag filters match when any value
    of the event's tag is in the filter's set.
    """

    ids: list[str] | None = None
    kinds: list[int] | None = None
    authors: list[str] | None = None
    since: int | None = None
    until: int | None = None
    limit: int | None = None
    tags: dict[str, list[str]] = field(default_factory=dict)

    def with_tag(self, name: str, values: list[str]) -> Filter:
        """Add a single-letter tag filter (``#name``)."""
        self.tags[name] = list(values)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire dictionary."""
        data: dict[str, Any] = {}
        if self.ids is not None:
            data["ids"] = list(self.ids)
        if self.kinds is not None:
            data["kinds"] = list(self.kinds)
        if self.authors is not None:
            data["authors"] = list(self.authors)
        for name, values in self.tags.items():
            data[f"#{name}"] = list(values)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        return data

    def matches(self, event: TransportEvent) -> bool:
        """Relay-side match semantics (``limit`` is applied by the caller)."""
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, values in self.tags.items():
            if not set(event.tag_values(name)) & set(values):
                return False
        return True
