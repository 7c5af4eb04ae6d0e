# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for mdk.

Errors fall into a small number of categories that the sync layer treats
differently:

- ConfigException: fatal, reported immediately (no identity, no groups)
- TransportError: fatal for one-shot calls, skip-cycle inside the watch loop
- FormatError / EngineError: per-event, dropped silently from a batch
- NotFoundError: an explicitly requested resource does not exist
"""

from __future__ import annotations

from typing import Any


class MDKException(Exception):  # noqa: N818
    """Base exception for all mdk errors.

    All mdk-specific exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigException(MDKException):
    """Exception for configuration errors.

    Raised when:
    - No key file is configured or it cannot be read
    - No relays remain after parsing the relay list
    - There are no groups to watch
    """

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class TransportError(MDKException):
    """Exception for relay transport failures.

    Raised when:
    - A fetch times out or no relay answers
    - A publish is not accepted by any relay
    - A relay connection cannot be established
    """

    def __init__(self, message: str, relays: list[str] | None = None):
        details: dict[str, Any] = {}
        if relays:
            details["relays"] = relays
        super().__init__(message, details)
        self.relays = relays or []


class FormatError(MDKException):
    """Exception for malformed or misclassified events.

    Raised when:
    - Welcome content cannot be parsed as a rumor
    - A gift-wrap cannot be opened
    - An unwrapped rumor has an unexpected kind
    """

    def __init__(self, message: str, event_id: str | None = None):
        details = {}
        if event_id:
            details["event_id"] = event_id
        super().__init__(message, details)
        self.event_id = event_id


class EngineError(MDKException):
    """Exception for group-state engine failures.

    Raised when:
    - A welcome is rejected by the engine
    - A message cannot be decrypted (stale epoch, foreign group)
    - A message cannot be created for a group
    """

    def __init__(self, message: str, operation: str | None = None):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)
        self.operation = operation


class NotFoundError(MDKException):
    """Exception for resource not found errors.

    Raised when:
    - A welcome event id is not found on any relay
    - A group id is not known to the engine
    """

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id
