# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Per-group sync cursors.

A cursor is the highest ``created_at`` of any application message
decrypted for a group. Cursors only move forward and are persisted as a
flat JSON object keyed by transport group id (hex).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


class CursorStore:
    """Monotonic per-group timestamps backed by a JSON file.

    Example:
        >>> store = CursorStore(Path("~/.mdk/cursors.json")).load()
        >>> store.advance(group_id, 1700000000)
        True
        >>> store.flush()
        True
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        self._cursors: dict[str, int] = {}

    def load(self) -> CursorStore:
        """Read persisted cursors.

        Missing or malformed files load as empty; entries whose value is not
        an integer are skipped.
        """
        self._cursors = {}
        if not self.path.exists():
            return self

        try:
            data = json.loads(self.path.read_text())
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable cursor file {self.path}: {e}")
            return self

        if not isinstance(data, dict):
            logger.warning(f"Ignoring cursor file {self.path}: not a JSON object")
            return self

        for group_id, value in data.items():
            # bool is an int subclass but never a timestamp
            if isinstance(value, int) and not isinstance(value, bool):
                self._cursors[str(group_id)] = value
            else:
                logger.debug(f"Skipping non-integer cursor for {group_id}")
        return self

    def get(self, group_id: str) -> int | None:
        return self._cursors.get(group_id)

    def advance(self, group_id: str, timestamp: int) -> bool:
        """Move a group's cursor forward.

        Returns:
            True if the stored value changed (``timestamp`` was strictly greater)
        """
        current = self._cursors.get(group_id)
        if current is not None and timestamp <= current:
            return False
        self._cursors[group_id] = timestamp
        return True

    def lower_bound(self, group_ids: Iterable[str]) -> int | None:
        """Minimum cursor across ``group_ids``.

        Returns None when any of the groups has no cursor yet (or when no
        groups are given), meaning the full history must be fetched.
        """
        values = []
        for group_id in group_ids:
            value = self._cursors.get(group_id)
            if value is None:
                return None
            values.append(value)
        return min(values) if values else None

    def snapshot(self) -> dict[str, int]:
        return dict(self._cursors)

    def flush(self) -> bool:
        """Atomically write cursors to disk.

        Returns:
            True on success. Failures are logged and never raised.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".cursors-", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(self._cursors, f, indent=2, sort_keys=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning(f"Failed to persist cursors to {self.path}: {e}")
            return False
        return True

    def __len__(self) -> int:
        return len(self._cursors)

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._cursors
