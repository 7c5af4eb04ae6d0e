# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Output formatting for CLI commands.

Every command prints a single JSON envelope to stdout:

    {"success": true, "data": {...}, "error": null}

Watch mode streams one compact JSON object per line instead. Logs go to
stderr so stdout stays machine-readable.
"""

from __future__ import annotations

import json
import sys
from typing import Any


def output_result(data: Any) -> None:
    """Print a success envelope."""
    print(json.dumps({"success": True, "data": data, "error": None}, indent=2, default=str))


def output_error(message: str) -> None:
    """Print a failure envelope."""
    print(json.dumps({"success": False, "data": None, "error": message}, indent=2, default=str))


def output_stream(data: dict[str, Any]) -> None:
    """Write one NDJSON line and flush it immediately."""
    sys.stdout.write(json.dumps(data, separators=(",", ":"), default=str) + "\n")
    sys.stdout.flush()
