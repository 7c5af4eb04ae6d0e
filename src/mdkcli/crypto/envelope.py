# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Sealed-envelope abstraction.

A gift-wrapped event hides both the inner record and its real author. An
opener reveals the two using the local identity's key material.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ..transport.events import Rumor, TransportEvent


@dataclass
class UnwrappedRumor:
    """Inner record of a gift-wrap plus the sender it reveals."""

    rumor: Rumor
    sender: str


class EnvelopeOpener(ABC):
    """Abstract interface for opening sealed envelopes."""

    @abstractmethod
    async def extract(self, wrapped: TransportEvent) -> UnwrappedRumor:
        """Open a gift-wrap addressed to the local identity.

        Raises:
            FormatError: If the envelope cannot be opened or parsed
        """
        pass
