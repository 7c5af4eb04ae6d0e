# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Logging for the mdk CLI.

Logs go to stderr; stdout carries command output only. Lines written
while a sync cycle is running carry that cycle's fields (cycle id, group
count and, once known, the fetch counters) so one poll of a watch can be
followed end to end.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

NOISY_LOGGERS = ("aiohttp", "asyncio")

_cycle: ContextVar[dict[str, Any] | None] = ContextVar("sync_cycle", default=None)


def current_cycle() -> dict[str, Any] | None:
    """Fields of the sync cycle running in this context, if any."""
    return _cycle.get()


@contextmanager
def cycle_context(cycle_id: str | None = None, **fields: Any) -> Generator[dict[str, Any], None, None]:
    """Scope log lines to one sync cycle.

    The yielded dict is live: fields added to it (for example the counters
    of a finished pass) show up on every later line in the scope.

    Example:
        with cycle_context(groups=3) as cycle:
            result = await syncer.sync()
            cycle.update(fetched=result.fetched)
    """
    cycle = {"cycle_id": cycle_id or uuid.uuid4().hex[:12], **fields}
    token = _cycle.set(cycle)
    try:
        yield cycle
    finally:
        _cycle.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with the current cycle's fields inlined."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cycle = current_cycle()
        if cycle:
            data.update(cycle)
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data)


class TextFormatter(logging.Formatter):
    """Terminal format: ``time level [cycle] message``."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)-7s %(cycle)s%(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        cycle = current_cycle()
        record.cycle = f"[{cycle['cycle_id'][:8]}] " if cycle else ""
        return super().format(record)


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install stderr logging for a CLI run.

    Unset arguments come from ``MDK_LOG_LEVEL``, ``MDK_LOG_FORMAT``
    ("json" or "text"; JSON when stderr is not a terminal) and
    ``MDK_LOG_FILE``. A log file is always written as JSON.
    """
    from .config import get_settings

    settings = get_settings()

    if level is None:
        level = settings.log_level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_format is None:
        log_format = settings.log_format.lower()
        json_format = log_format == "json" or (log_format != "text" and not sys.stderr.isatty())

    if log_file is None:
        log_file = settings.log_file

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JSONFormatter() if json_format else TextFormatter())
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
