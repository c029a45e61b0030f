"""Slash-command aliases for coaching tools. Lookups are case-insensitive."""

from __future__ import annotations

from typing import Dict, List, Optional

TOOL_SHORTCUTS: Dict[str, str] = {
    "patterns": "pattern-detective",
    "pattern": "pattern-detective",
    "detective": "pattern-detective",
    "calibrate": "calibration-coach",
    "calibration": "calibration-coach",
    "coach": "calibration-coach",
    "premortem": "pre-mortem",
    "pre-mortem": "pre-mortem",
    "mortem": "pre-mortem",
    "bias": "bias-detector",
    "biases": "bias-detector",
    "detector": "bias-detector",
}


def tool_for_shortcut(shortcut: str) -> Optional[str]:
    return TOOL_SHORTCUTS.get((shortcut or "").strip().lower())


def shortcuts_for_tool(tool_id: str) -> List[str]:
    return [alias for alias, target in TOOL_SHORTCUTS.items() if target == tool_id]


def primary_shortcut(tool_id: str) -> Optional[str]:
    aliases = shortcuts_for_tool(tool_id)
    return aliases[0] if aliases else None


__all__ = ["TOOL_SHORTCUTS", "primary_shortcut", "shortcuts_for_tool", "tool_for_shortcut"]
