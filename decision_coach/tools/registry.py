"""In-memory registry of coaching tools."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from .base import CoachingTool, ToolCategory, ToolExecutionContext, ToolResult
from .shortcuts import shortcuts_for_tool, tool_for_shortcut
from .validation import is_blank


class ToolRegistry:
    """Holds tool definitions and runs them without ever raising."""

    def __init__(self) -> None:
        self._tools: Dict[str, CoachingTool] = {}
        self.logger = logging.getLogger("decision_coach.tools")

    def register(self, tool: CoachingTool) -> None:
        if not (tool.id or "").strip():
            raise ValueError("Tool id is required")
        if not (tool.name or "").strip():
            raise ValueError(f"Tool '{tool.id}' must have a name")
        if not isinstance(tool.category, ToolCategory):
            raise ValueError(f"Tool '{tool.id}' has invalid category: {tool.category!r}")
        if tool.id in self._tools:
            self.logger.warning("Overwriting registered tool", extra={"tool": tool.id})
        self._tools[tool.id] = tool

    def get(self, tool_id: str) -> Optional[CoachingTool]:
        return self._tools.get(tool_id)

    def list(self) -> List[CoachingTool]:
        return list(self._tools.values())

    def list_by_category(self, category: ToolCategory) -> List[CoachingTool]:
        return [tool for tool in self._tools.values() if tool.category is category]

    def search(self, text: str) -> List[CoachingTool]:
        needle = (text or "").strip().lower()
        if not needle:
            return self.list()
        return [
            tool
            for tool in self._tools.values()
            if needle in tool.name.lower()
            or needle in tool.description.lower()
            or any(needle in tag.lower() for tag in tool.tags)
        ]

    def find_by_shortcut(self, shortcut: str) -> Optional[CoachingTool]:
        tool_id = tool_for_shortcut(shortcut)
        return self._tools.get(tool_id) if tool_id else None

    def shortcuts(self, tool_id: str) -> List[str]:
        return shortcuts_for_tool(tool_id)

    def validate_context(self, tool: CoachingTool, context: ToolExecutionContext) -> Optional[str]:
        if tool.requires_decision_link and context.current_decision is None:
            return f"{tool.name} requires a decision-linked chat. Attach a decision and try again."
        if tool.requires_reviewed_decisions and not any(d.is_reviewed for d in context.all_decisions):
            return f"{tool.name} requires at least one reviewed decision (with outcome)"
        for field_def in tool.required_fields:
            if is_blank(context.inputs.get(field_def.name)):
                return f'Required field "{field_def.label}" is missing'
        return None

    async def execute(self, tool_id: str, context: ToolExecutionContext) -> ToolResult:
        """Run a tool. Unknown ids, context violations and tool errors become failed results."""

        start = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - start) * 1000)

        tool = self.get(tool_id)
        if tool is None:
            return ToolResult.failure(f"Tool '{tool_id}' not found in registry", elapsed_ms())
        problem = self.validate_context(tool, context)
        if problem:
            self.logger.info("Tool context rejected", extra={"tool": tool_id, "session_id": context.session_id})
            return ToolResult.failure(problem, elapsed_ms())

        try:
            result = await tool.run(context)
        except Exception as exc:
            self.logger.error(
                "Tool execution failed",
                exc_info=True,
                extra={"tool": tool_id, "session_id": context.session_id},
            )
            return ToolResult.failure(f"{tool.name} failed: {exc}", elapsed_ms())

        if not result.execution_time_ms:
            result.execution_time_ms = elapsed_ms()
        self.logger.info(
            "Tool executed",
            extra={
                "tool": tool_id,
                "session_id": context.session_id,
                "status_code": "ok" if result.success else "failed",
                "elapsed_ms": result.execution_time_ms,
            },
        )
        return result


__all__ = ["ToolRegistry"]
