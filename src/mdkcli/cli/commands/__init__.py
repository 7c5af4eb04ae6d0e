# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""CLI command modules.

Each module exposes a ``register(subparsers)`` function that wires up
its argparse sub-commands and sets ``parser.set_defaults(func=handler)``.
"""

from . import groups, identity, keypackage, messages, welcomes
from .groups import cmd_list_groups
from .identity import cmd_init, cmd_whoami
from .keypackage import cmd_publish_key_package
from .messages import cmd_receive, cmd_send
from .welcomes import cmd_accept_welcome, cmd_list_welcomes

# Registration order is the order shown in --help
COMMAND_MODULES = [
    identity,
    keypackage,
    welcomes,
    groups,
    messages,
]

__all__ = [
    "COMMAND_MODULES",
    "cmd_accept_welcome",
    "cmd_init",
    "cmd_list_groups",
    "cmd_list_welcomes",
    "cmd_publish_key_package",
    "cmd_receive",
    "cmd_send",
    "cmd_whoami",
]
