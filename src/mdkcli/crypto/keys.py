# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Local identity key material.

Wraps ``nostr_sdk.Keys`` so the rest of the package only sees hex strings.
The key file holds the secret key as hex on a single line and is written
with owner-only permissions.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from nostr_sdk import Keys, PublicKey

from ..core.exceptions import ConfigException

logger = logging.getLogger(__name__)


class Identity:
    """A secp256k1 identity able to sign event ids.

    Satisfies the ``EventSigner`` protocol.
    """

    def __init__(self, keys: Keys):
        self._keys = keys

    @classmethod
    def generate(cls) -> Identity:
        return cls(Keys.generate())

    @classmethod
    def parse(cls, secret: str) -> Identity:
        """Parse a secret key given as hex or ``nsec`` bech32.

        Raises:
            ConfigException: If the secret is not a valid key
        """
        try:
            return cls(Keys.parse(secret.strip()))
        except Exception as e:
            # nostr_sdk surfaces parse failures as its own error type
            raise ConfigException(f"Invalid secret key: {e}") from e

    @property
    def keys(self) -> Keys:
        return self._keys

    @property
    def public_key(self) -> str:
        return self._keys.public_key().to_hex()

    @property
    def npub(self) -> str:
        return self._keys.public_key().to_bech32()

    @property
    def secret_hex(self) -> str:
        return self._keys.secret_key().to_hex()

    def sign(self, event_id: str) -> str:
        """BIP-340 signature over the 32-byte event id."""
        return self._keys.sign_schnorr(bytes.fromhex(event_id))

    def __repr__(self) -> str:
        return f"Identity({self.npub})"


def npub_for(pubkey: str) -> str:
    """Bech32 ``npub`` for a hex public key, or "" if it is not a valid key."""
    try:
        return PublicKey.parse(pubkey).to_bech32()
    except Exception as e:
        # nostr_sdk surfaces parse failures as its own error type
        logger.debug(f"No npub for {pubkey}: {e}")
        return ""


def load_identity(path: Path | str) -> Identity:
    """Load an identity from a key file.

    Raises:
        ConfigException: If the file is missing or does not hold a valid key
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise ConfigException(
            f"No identity found at {path}. Run 'mdk init' first.",
            missing_vars=["MDK_KEY_FILE"],
        )
    return Identity.parse(path.read_text())


def save_identity(identity: Identity, path: Path | str) -> Path:
    """Write the identity's secret key, creating parent directories."""
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(identity.secret_hex + "\n")
    os.chmod(path, 0o600)
    logger.info(f"Saved identity {identity.npub} to {path}")
    return path
