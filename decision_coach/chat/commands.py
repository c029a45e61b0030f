"""Slash-command grammar for invoking tools from the chat input.

``/`` at the very start of the input introduces a command::

    ""            -> none
    "/"           -> trigger       (show every tool)
    "/pat"        -> partial       (filter the palette)
    "/patterns"   -> partial       (resolves, but no trailing space yet)
    "/patterns "  -> exact-match   (resolves and is followed by a space)

A ``/`` anywhere else is ordinary text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..tools.shortcuts import tool_for_shortcut

_COMMAND = re.compile(r"^/(\S*)")
_STRIP_COMMAND = re.compile(r"^/\S*\s*")

Resolver = Callable[[str], Optional[str]]


class CommandState(str, Enum):
    NONE = "none"
    TRIGGER = "trigger"
    PARTIAL = "partial"
    EXACT_MATCH = "exact-match"


@dataclass(frozen=True)
class SlashCommand:
    state: CommandState
    command: str = ""
    tool_id: Optional[str] = None

    @property
    def shows_palette(self) -> bool:
        return self.state in (CommandState.TRIGGER, CommandState.PARTIAL)


NO_COMMAND = SlashCommand(CommandState.NONE)


def parse_slash_command(
    text: str,
    cursor: Optional[int] = None,
    resolve: Resolver = tool_for_shortcut,
) -> SlashCommand:
    """Classify ``text`` and resolve its command to a tool id when possible.

    ``cursor`` is the caret position; a caret moved in front of the slash
    means the user is not editing the command.
    """

    if not text or not text.startswith("/"):
        return NO_COMMAND
    if cursor is not None and not text[:cursor].startswith("/"):
        return NO_COMMAND

    match = _COMMAND.match(text)
    command = match.group(1).lower() if match else ""
    if not command:
        return SlashCommand(CommandState.TRIGGER)

    tool_id = resolve(command)
    if tool_id is None:
        return SlashCommand(CommandState.PARTIAL, command)
    end = match.end()
    if len(text) > end and text[end] == " ":
        return SlashCommand(CommandState.EXACT_MATCH, command, tool_id)
    return SlashCommand(CommandState.PARTIAL, command, tool_id)


def remove_slash_command(text: str) -> str:
    """Strip a leading command and the whitespace after it."""

    return _STRIP_COMMAND.sub("", text or "", count=1)


__all__ = [
    "CommandState",
    "NO_COMMAND",
    "SlashCommand",
    "parse_slash_command",
    "remove_slash_command",
]
