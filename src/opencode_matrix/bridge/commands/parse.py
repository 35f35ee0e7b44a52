"""Command parsing utilities."""

from __future__ import annotations

import shlex
from dataclasses import dataclass

SHORTCUT_COMMANDS = {
    "!help": "help",
    "!status": "status",
}


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    command_id: str
    args_text: str


def _split_first_line(text: str) -> tuple[str, str]:
    lines = text.splitlines()
    first_line = lines[0] if lines else ""
    token, _, rest = first_line.strip().partition(" ")
    args_text = rest.strip()
    if len(lines) > 1:
        tail = "\n".join(lines[1:])
        args_text = f"{args_text}\n{tail}" if args_text else tail
    return token, args_text


def parse_command(text: str, prefix: str) -> ParsedCommand | None:
    """Parse ``<prefix> <command> [args]`` or a shortcut such as ``!help``.

    Args:
        text: The message body.
        prefix: The bot command prefix, e.g. ``!opencode``.

    Returns:
        The parsed command, or None when the text is not a command. A bare
        prefix parses to an empty ``command_id``.
    """
    stripped = text.lstrip()
    token, rest = _split_first_line(stripped)
    lowered = token.lower()
    if lowered == prefix.lower():
        command, args_text = _split_first_line(rest)
        return ParsedCommand(command_id=command.lower(), args_text=args_text)
    shortcut = SHORTCUT_COMMANDS.get(lowered)
    if shortcut is not None:
        return ParsedCommand(command_id=shortcut, args_text=rest)
    return None


def split_command_args(text: str) -> tuple[str, ...]:
    """Split command arguments using shell-like parsing.

    Args:
        text: The arguments text to split.

    Returns:
        A tuple of argument strings.
    """
    if not text.strip():
        return ()
    try:
        return tuple(shlex.split(text))
    except ValueError:
        return tuple(text.split())
