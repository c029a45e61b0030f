"""Coaching tools that can be run from the chat."""

from __future__ import annotations

from typing import Any

from ..llm_client import OllamaClient
from .base import (
    CoachingTool,
    FieldType,
    FieldValidation,
    ToolCategory,
    ToolExecutionContext,
    ToolExecutionError,
    ToolInputField,
    ToolResult,
)
from .bias_detector import BiasDetectorTool
from .calibration_coach import CalibrationCoachTool
from .pattern_detective import PatternDetectiveTool
from .pre_mortem import PreMortemTool
from .registry import ToolRegistry
from .shortcuts import TOOL_SHORTCUTS, primary_shortcut, shortcuts_for_tool, tool_for_shortcut
from .validation import coerce_inputs, validate_inputs


def build_default_registry(llm_client: OllamaClient, retriever: Any) -> ToolRegistry:
    """Registry with the four built-in coaching tools."""

    registry = ToolRegistry()
    registry.register(PatternDetectiveTool(retriever))
    registry.register(CalibrationCoachTool())
    registry.register(PreMortemTool(llm_client))
    registry.register(BiasDetectorTool(llm_client))
    return registry


__all__ = [
    "BiasDetectorTool",
    "CalibrationCoachTool",
    "CoachingTool",
    "FieldType",
    "FieldValidation",
    "PatternDetectiveTool",
    "PreMortemTool",
    "TOOL_SHORTCUTS",
    "ToolCategory",
    "ToolExecutionContext",
    "ToolExecutionError",
    "ToolInputField",
    "ToolRegistry",
    "ToolResult",
    "build_default_registry",
    "coerce_inputs",
    "primary_shortcut",
    "shortcuts_for_tool",
    "tool_for_shortcut",
    "validate_inputs",
]
