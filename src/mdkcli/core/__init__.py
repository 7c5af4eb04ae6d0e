# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core infrastructure: configuration, logging, errors, session context."""

from .config import MDKConfig, MDKSettings, get_settings
from .context import SessionContext
from .exceptions import (
    ConfigException,
    EngineError,
    FormatError,
    MDKException,
    NotFoundError,
    TransportError,
)

__all__ = [
    "ConfigException",
    "EngineError",
    "FormatError",
    "MDKConfig",
    "MDKException",
    "MDKSettings",
    "NotFoundError",
    "SessionContext",
    "TransportError",
    "get_settings",
]
