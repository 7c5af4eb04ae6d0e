# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Helpers shared by command handlers."""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.config import MDKConfig, split_relays
from ..core.context import SessionContext
from ..core.exceptions import MDKException
from .output import output_error, output_result

logger = logging.getLogger(__name__)


def config_from_args(args: argparse.Namespace) -> MDKConfig:
    """Resolve configuration from global flags, env and config file."""
    relays = split_relays(args.relays) if getattr(args, "relays", None) else None
    return MDKConfig.load(
        config_path=getattr(args, "config", None),
        key_file=getattr(args, "key_file", None),
        db_path=getattr(args, "db_path", None),
        relays=relays,
    )


def run_with_session(
    args: argparse.Namespace,
    body: Callable[[SessionContext], Awaitable[Any]],
    connect: bool = True,
) -> int:
    """Build a session, run ``body`` in it and print the envelope.

    Args:
        args: Parsed arguments
        body: Coroutine function producing the data to print. Returning
            None prints nothing (streaming commands print their own output).
        connect: Whether the relay transport is needed

    Returns:
        Process exit code
    """

    async def _run() -> Any:
        session = SessionContext.load(config_from_args(args))
        if not connect:
            try:
                return await body(session)
            finally:
                session.close()
        async with session:
            return await body(session)

    try:
        data = asyncio.run(_run())
    except MDKException as e:
        logger.debug(f"Command failed: {e.to_dict()}")
        output_error(e.message)
        return 1

    if data is not None:
        output_result(data)
    return 0
