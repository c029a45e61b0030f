"""Base abstractions for coaching tools."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..journal.models import Decision


class ToolCategory(str, Enum):
    PATTERN = "pattern"
    RISK = "risk"
    FRAMEWORK = "framework"


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    SELECT = "select"
    MULTISELECT = "multiselect"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class FieldValidation:
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class ToolInputField:
    """One form field a tool asks the user for."""

    name: str
    type: FieldType
    label: str
    placeholder: Optional[str] = None
    options: Tuple[Tuple[str, str], ...] = ()
    required: bool = False
    validation: Optional[FieldValidation] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "label": self.label,
            "placeholder": self.placeholder,
            "options": [{"value": value, "label": label} for value, label in self.options],
            "required": self.required,
        }
        if self.validation is not None:
            payload["validation"] = {
                key: value for key, value in vars(self.validation).items() if value is not None
            }
        return payload


@dataclass
class ToolExecutionContext:
    """Everything a tool may look at while running."""

    session_id: str
    all_decisions: List[Decision] = field(default_factory=list)
    current_decision: Optional[Decision] = None
    inputs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """Normalized result returned by every tool run."""

    success: bool
    data: Any = None
    markdown: Optional[str] = None
    error: Optional[str] = None
    execution_time_ms: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, error: str, execution_time_ms: int = 0) -> "ToolResult":
        return cls(success=False, error=error, execution_time_ms=execution_time_ms)


class ToolExecutionError(RuntimeError):
    """Raised when a tool invocation fails."""


_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


class CoachingTool:
    """Interface implemented by all coaching tools.

    Subclasses declare their metadata as class attributes and implement
    ``run``. The registry adds timing and turns raised errors into failed
    results.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    category: ToolCategory = ToolCategory.PATTERN
    icon: str = ""
    tags: Tuple[str, ...] = ()
    input_fields: Tuple[ToolInputField, ...] = ()
    requires_decision_link: bool = False
    requires_reviewed_decisions: bool = False
    system_prompt: str = ""
    user_prompt_template: str = "{{markdown}}"

    async def run(self, context: ToolExecutionContext) -> ToolResult:
        raise NotImplementedError

    @property
    def required_fields(self) -> List[ToolInputField]:
        return [field_def for field_def in self.input_fields if field_def.required]

    def template_values(self, result: ToolResult, inputs: Dict[str, Any]) -> Dict[str, str]:
        """Values for the ``{{name}}`` placeholders of ``user_prompt_template``."""

        values = {key: str(value) for key, value in inputs.items() if value is not None}
        values["markdown"] = result.markdown or ""
        return values

    def interpretation_prompt(self, result: ToolResult, inputs: Optional[Dict[str, Any]] = None) -> str:
        """Follow-up turn asking the model to comment on ``result``."""

        values = self.template_values(result, inputs or {})
        filled = _PLACEHOLDER.sub(lambda match: values.get(match.group(1), ""), self.user_prompt_template)
        return (
            f'The user just ran the "{self.name}" tool. Here are the results:\n\n'
            f"{result.markdown or ''}\n\n{filled}"
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "icon": self.icon,
            "tags": list(self.tags),
            "fields": [field_def.to_dict() for field_def in self.input_fields],
            "requires_decision_link": self.requires_decision_link,
            "requires_reviewed_decisions": self.requires_reviewed_decisions,
        }


__all__ = [
    "CoachingTool",
    "FieldType",
    "FieldValidation",
    "ToolCategory",
    "ToolExecutionContext",
    "ToolExecutionError",
    "ToolInputField",
    "ToolResult",
]
