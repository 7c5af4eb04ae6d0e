# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""mdk - MLS-encrypted group messaging over Nostr relays.

Layers:
- transport: relay event model and websocket relay pool
- crypto: group-state engine, sealed envelopes, identity keys
- sync: classification, decrypt pipeline, incremental cursors, watch loop
- cli: the ``mdk`` command
"""

__version__ = "0.1.0"
