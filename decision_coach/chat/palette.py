"""Keyboard-driven tool picker state, independent of any widget."""

from __future__ import annotations

from typing import List, Optional

from ..tools.base import CoachingTool
from ..tools.registry import ToolRegistry
from ..tools.shortcuts import primary_shortcut, shortcuts_for_tool
from .commands import remove_slash_command


class ToolPalette:
    """Filtered candidate list plus a highlighted row.

    ``filter()`` is fed the partial command; navigation wraps around the ends.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry
        self.query = ""
        self.visible = False
        self.highlight = 0
        self.candidates: List[CoachingTool] = []

    def open(self, query: str = "") -> List[CoachingTool]:
        self.visible = True
        return self.filter(query)

    def filter(self, query: str) -> List[CoachingTool]:
        self.query = (query or "").strip().lower()
        self.highlight = 0
        if not self.query:
            self.candidates = self.registry.list()
        else:
            self.candidates = [tool for tool in self.registry.list() if self._matches(tool, self.query)]
        return self.candidates

    def close(self) -> None:
        self.visible = False
        self.query = ""
        self.highlight = 0
        self.candidates = []

    @property
    def highlighted(self) -> Optional[CoachingTool]:
        if not self.candidates:
            return None
        return self.candidates[self.highlight]

    def move_down(self) -> Optional[CoachingTool]:
        if self.candidates:
            self.highlight = (self.highlight + 1) % len(self.candidates)
        return self.highlighted

    def move_up(self) -> Optional[CoachingTool]:
        if self.candidates:
            self.highlight = (self.highlight - 1) % len(self.candidates)
        return self.highlighted

    def autocomplete(self) -> Optional[str]:
        """Draft text that completes the highlighted tool's command, ready to run."""

        tool = self.highlighted
        if tool is None:
            return None
        shortcut = primary_shortcut(tool.id) or tool.id
        self.close()
        return f"/{shortcut} "

    def cancel(self, draft: str) -> str:
        """Dismiss the palette and return ``draft`` without its command."""

        self.close()
        return remove_slash_command(draft)

    def select(self) -> Optional[CoachingTool]:
        tool = self.highlighted
        self.close()
        return tool

    @staticmethod
    def _matches(tool: CoachingTool, query: str) -> bool:
        if query in tool.id.lower() or query in tool.name.lower():
            return True
        return any(query in alias for alias in shortcuts_for_tool(tool.id))


__all__ = ["ToolPalette"]
