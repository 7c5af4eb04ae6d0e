# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Group-state engine, sealed envelopes and identity keys.

``Identity`` and ``Nip59Opener`` depend on nostr-sdk and are imported from
their modules directly (``mdkcli.crypto.keys``, ``mdkcli.crypto.nip59``).
"""

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
from .envelope import EnvelopeOpener, UnwrappedRumor
from .local import LocalGroupEngine

__all__ = [
    "ApplicationMessage",
    "CommitProcessed",
    "DecryptionError",
    "EnvelopeOpener",
    "Group",
    "GroupEngine",
    "GroupNotFoundError",
    "LocalGroupEngine",
    "MessageProcessingResult",
    "UnwrappedRumor",
    "WelcomeDescriptor",
    "WelcomeRejectedError",
]
