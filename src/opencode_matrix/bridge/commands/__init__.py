"""Command handling for the Matrix bridge.

This module provides command parsing and dispatch for the bot commands.
"""

from __future__ import annotations

from .builtin import BUILTIN_COMMAND_IDS, handle_builtin_command
from .parse import SHORTCUT_COMMANDS, ParsedCommand, parse_command, split_command_args

__all__ = [
    "BUILTIN_COMMAND_IDS",
    "SHORTCUT_COMMANDS",
    "ParsedCommand",
    "handle_builtin_command",
    "parse_command",
    "split_command_args",
]
