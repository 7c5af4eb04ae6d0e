# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Per-invocation session context.

Everything a command needs (identity, engine, transport, envelope opener,
cursors) is built once here and handed to the components explicitly.
There is no process-global identity.

Example:
    >>> config = MDKConfig.load()
    >>> async with SessionContext.load(config) as session:
    ...     result = await session.syncer().sync()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .config import MDKConfig

if TYPE_CHECKING:
    from ..crypto.engine import GroupEngine
    from ..crypto.envelope import EnvelopeOpener
    from ..crypto.keys import Identity
    from ..sync.cursors import CursorStore
    from ..sync.incremental import IncrementalSync
    from ..sync.pipeline import DeliveryPipeline
    from ..sync.welcomes import WelcomeInbox
    from ..transport.relay import RelayTransport

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    """Collaborators for one command invocation."""

    config: MDKConfig
    identity: Identity
    engine: GroupEngine
    transport: RelayTransport
    opener: EnvelopeOpener
    cursors: CursorStore

    @classmethod
    def load(cls, config: MDKConfig) -> SessionContext:
        """Build the default collaborators from configuration.

        Raises:
            ConfigException: If the identity cannot be loaded or no relay
                URL is usable
        """
        from ..crypto.keys import load_identity
        from ..crypto.local import LocalGroupEngine
        from ..crypto.nip59 import Nip59Opener
        from ..sync.cursors import CursorStore
        from ..transport.relay import RelayPool

        identity = load_identity(config.key_file or config.default_key_path)
        config.ensure_state_dir()
        logger.debug(f"Loaded identity {identity.public_key[:16]}, state in {config.state_dir}")

        return cls(
            config=config,
            identity=identity,
            engine=LocalGroupEngine(identity, config.db_path),
            transport=RelayPool(config.relays),
            opener=Nip59Opener(identity),
            cursors=CursorStore(config.cursor_path).load(),
        )

    @property
    def pubkey(self) -> str:
        return self.identity.public_key

    def pipeline(self) -> DeliveryPipeline:
        from ..sync.pipeline import DeliveryPipeline

        return DeliveryPipeline(self.engine, self.opener, self.pubkey)

    def syncer(self) -> IncrementalSync:
        from ..sync.incremental import IncrementalSync

        return IncrementalSync(
            self.engine,
            self.transport,
            self.pipeline(),
            self.cursors,
            fetch_timeout=self.config.fetch_timeout,
        )

    def inbox(self) -> WelcomeInbox:
        from ..sync.welcomes import WelcomeInbox

        return WelcomeInbox(
            self.transport,
            self.pipeline(),
            self.pubkey,
            fetch_timeout=self.config.fetch_timeout,
        )

    async def __aenter__(self) -> SessionContext:
        await self.transport.connect()
        return self

    def close(self) -> None:
        """Release the engine's store, if it holds one."""
        close = getattr(self.engine, "close", None)
        if close is not None:
            close()

    async def __aexit__(self, *exc_info: Any) -> None:
        try:
            await self.transport.disconnect()
        finally:
            self.close()
