"""Journal entry records consumed by the chat orchestrator."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EmotionalFlag(str, Enum):
    REGRET = "regret"
    FOMO = "fomo"
    FEAR = "fear"
    ANXIETY = "anxiety"
    EXCITEMENT = "excitement"
    CONFIDENCE = "confidence"
    DOUBT = "doubt"
    STRESS = "stress"


@dataclass
class Alternative:
    """One option considered for a decision."""

    id: str
    title: str
    description: Optional[str] = None
    pros: List[str] = field(default_factory=list)
    cons: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.title or self.description or "Alternative"


@dataclass
class Decision:
    """A journal entry. Timestamps are epoch milliseconds."""

    id: str
    created_at: int
    updated_at: int
    problem_statement: str = ""
    situation: str = ""
    variables: List[str] = field(default_factory=list)
    complications: List[str] = field(default_factory=list)
    alternatives: List[Alternative] = field(default_factory=list)
    selected_alternative_id: Optional[str] = None
    expected_outcome: str = ""
    best_case_scenario: str = ""
    worst_case_scenario: str = ""
    confidence_level: Optional[int] = None
    mental_state: str = ""
    physical_state: str = ""
    time_of_day: str = ""
    emotional_flags: List[str] = field(default_factory=list)
    actual_outcome: Optional[str] = None
    outcome_rating: Optional[int] = None
    lessons_learned: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_archived: bool = False

    @property
    def is_reviewed(self) -> bool:
        return bool(self.actual_outcome)

    @property
    def selected_alternative(self) -> Optional[Alternative]:
        for alternative in self.alternatives:
            if alternative.id == self.selected_alternative_id:
                return alternative
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Decision":
        payload = dict(data)
        payload["alternatives"] = [
            alt if isinstance(alt, Alternative) else Alternative(**alt)
            for alt in payload.get("alternatives") or []
        ]
        known = set(cls.__dataclass_fields__)
        return cls(**{key: value for key, value in payload.items() if key in known})


@dataclass
class ProfileContextItem:
    """Answer to one of the fixed profile questions."""

    question: str
    answer: str = ""


@dataclass
class UserProfile:
    name: Optional[str] = None
    description: Optional[str] = None
    context_items: List[ProfileContextItem] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            (self.name or "").strip()
            or (self.description or "").strip()
            or self.context_items
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        items = [
            item if isinstance(item, ProfileContextItem) else ProfileContextItem(**item)
            for item in data.get("context_items") or []
        ]
        return cls(name=data.get("name"), description=data.get("description"), context_items=items)


__all__ = ["Alternative", "Decision", "EmotionalFlag", "ProfileContextItem", "UserProfile"]
