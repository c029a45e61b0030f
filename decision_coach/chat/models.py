"""Records shared by the chat components."""

from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

PROVISIONAL_PREFIX = "provisional:"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_provisional_id() -> str:
    return f"{PROVISIONAL_PREFIX}{secrets.token_hex(8)}"


def is_provisional(session_id: Optional[str]) -> bool:
    return bool(session_id) and str(session_id).startswith(PROVISIONAL_PREFIX)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool-result"
    TOOL_INPUT = "tool-input"

    @property
    def is_durable(self) -> bool:
        return self is not MessageRole.TOOL_INPUT


class ToolInputStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"


class TriggerType(str, Enum):
    """How a session came to exist."""

    MANUAL = "manual"
    AUTO_OPENED = "auto_opened"
    DECISION_LINKED = "decision_linked"

    @classmethod
    def from_raw(cls, value: "str | TriggerType | None") -> "TriggerType":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.MANUAL
        normalized = str(value).strip().lower()
        for trigger in cls:
            if trigger.value == normalized:
                return trigger
        return cls.MANUAL


@dataclass
class ToolExecution:
    """Outcome of a tool run carried by a ``tool-result`` message."""

    tool_id: str
    tool_name: str
    success: bool
    data: Any = None
    markdown: Optional[str] = None
    error: Optional[str] = None
    execution_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_id": self.tool_id,
            "tool_name": self.tool_name,
            "success": self.success,
            "data": self.data,
            "markdown": self.markdown,
            "error": self.error,
            "execution_time_ms": self.execution_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolExecution":
        return cls(**{key: data.get(key) for key in cls.__dataclass_fields__ if key in data})


@dataclass
class ToolInputRequest:
    """Form state for a ``tool-input`` message."""

    tool_id: str
    tool_name: str
    values: Dict[str, Any] = field(default_factory=dict)
    status: ToolInputStatus = ToolInputStatus.PENDING
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class Message:
    id: str
    role: MessageRole
    content: str
    created_at: int
    context_decision_ids: List[str] = field(default_factory=list)
    tool_execution: Optional[ToolExecution] = None
    tool_input: Optional[ToolInputRequest] = None

    @classmethod
    def create(cls, role: MessageRole, content: str, **kwargs: Any) -> "Message":
        return cls(id=uuid.uuid4().hex, role=role, content=content, created_at=now_ms(), **kwargs)

    def with_content(self, content: str, *, created_at: Optional[int] = None) -> "Message":
        return replace(self, content=content, created_at=created_at if created_at is not None else self.created_at)


@dataclass
class Session:
    id: str
    created_at: int
    updated_at: int
    attached_decision_ids: List[str] = field(default_factory=list)
    title: Optional[str] = None
    trigger_type: TriggerType = TriggerType.MANUAL

    @property
    def is_provisional(self) -> bool:
        return is_provisional(self.id)


@dataclass
class SessionSummary:
    """Row of the session list: metadata plus message statistics."""

    id: str
    created_at: int
    updated_at: int
    attached_decision_ids: List[str] = field(default_factory=list)
    title: Optional[str] = None
    trigger_type: TriggerType = TriggerType.MANUAL
    message_count: int = 0
    first_message_preview: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.title or self.first_message_preview or "New Chat"


__all__ = [
    "Message",
    "MessageRole",
    "PROVISIONAL_PREFIX",
    "Session",
    "SessionSummary",
    "ToolExecution",
    "ToolInputRequest",
    "ToolInputStatus",
    "TriggerType",
    "is_provisional",
    "new_provisional_id",
    "now_ms",
]
