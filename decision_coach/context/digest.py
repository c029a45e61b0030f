"""Structured digests of the journal entries a conversation is anchored to."""

from __future__ import annotations

from enum import Enum
from typing import List, Sequence

from ..config import CONFIG, ContextConfig
from ..journal.models import Decision
from .prompts import section, truncate

MAX_LISTED_ALTERNATIVES = 3


class Verbosity(str, Enum):
    DETAILED = "detailed"
    MEDIUM = "medium"
    BRIEF = "brief"

    @classmethod
    def for_count(cls, count: int) -> "Verbosity":
        if count <= 3:
            return cls.DETAILED
        if count <= 5:
            return cls.MEDIUM
        return cls.BRIEF


def build_decision_digest(decision: Decision, config: ContextConfig = CONFIG.context) -> str:
    """Full digest of one anchored decision."""

    lines: List[str] = []
    if decision.problem_statement:
        lines.append(f"\nProblem: {decision.problem_statement}")
    if decision.situation:
        lines.append(f"\nSituation: {truncate(decision.situation, config.situation_chars)}")

    state = []
    if decision.mental_state:
        state.append(f"Mental: {decision.mental_state}")
    if decision.physical_state:
        state.append(f"Physical: {decision.physical_state}")
    if decision.emotional_flags:
        state.append(f"Emotions: {', '.join(decision.emotional_flags)}")
    if state:
        lines.append(f"\nState: {' | '.join(state)}")

    if decision.alternatives:
        lines.append(f"\nAlternatives considered: {len(decision.alternatives)}")
        for idx, alternative in enumerate(decision.alternatives[:MAX_LISTED_ALTERNATIVES], start=1):
            marker = "→" if alternative.id == decision.selected_alternative_id else " "
            lines.append(f"  {marker} {idx}. {alternative.label}")
        remaining = len(decision.alternatives) - MAX_LISTED_ALTERNATIVES
        if remaining > 0:
            lines.append(f"  ... and {remaining} more")

    if decision.confidence_level is not None:
        lines.append(f"\nConfidence: {decision.confidence_level}/10")

    if decision.is_reviewed:
        lines.append(f"\nActual Outcome: {truncate(decision.actual_outcome or '', config.outcome_chars)}")
        if decision.outcome_rating is not None:
            lines.append(f"Outcome Rating: {decision.outcome_rating}/10")
        if decision.lessons_learned:
            lines.append(f"Lessons: {truncate(decision.lessons_learned, config.lessons_chars)}")

    if decision.tags:
        lines.append(f"\nTags: {', '.join(decision.tags)}")

    return section(
        "CURRENT DECISION CONTEXT",
        lines,
        footer="Focus on helping the user think through THIS decision specifically.",
    )


def build_anchor_block(decisions: Sequence[Decision], config: ContextConfig = CONFIG.context) -> str:
    """Digest for one or more anchors; detail shrinks as the count grows."""

    if not decisions:
        return ""
    if len(decisions) == 1:
        return build_decision_digest(decisions[0], config)

    verbosity = Verbosity.for_count(len(decisions))
    summarize = {
        Verbosity.DETAILED: _detailed_summary,
        Verbosity.MEDIUM: _medium_summary,
        Verbosity.BRIEF: _brief_summary,
    }[verbosity]

    lines = ["", "The user has attached these decisions for context:", ""]
    for idx, decision in enumerate(decisions, start=1):
        lines.append(f"{idx}. {decision.problem_statement or 'Decision'}")
        lines.extend(summarize(decision))
        lines.extend(["", "-" * 60, ""])

    return section(
        f"ATTACHED DECISIONS CONTEXT ({len(decisions)} decisions)",
        lines,
        footer=(
            "Use these decisions to spot patterns across the user's choices, reference\n"
            "specific entries when relevant, and help calibrate their confidence."
        ),
    )


def _detailed_summary(decision: Decision) -> List[str]:
    lines = []
    if decision.situation:
        lines.append(f"   Situation: {truncate(decision.situation, 200)}")
    state = []
    if decision.mental_state:
        state.append(decision.mental_state)
    if decision.emotional_flags:
        state.append(f"Emotions: {', '.join(decision.emotional_flags[:3])}")
    if state:
        lines.append(f"   State: {' | '.join(state)}")
    if decision.alternatives:
        lines.append(f"   Alternatives: {len(decision.alternatives)} considered")
        selected = decision.selected_alternative
        if selected is not None:
            lines.append(f"   → Selected: {selected.label}")
    if decision.is_reviewed:
        lines.append(f"   Outcome: {truncate(decision.actual_outcome or '', 150)}")
        if decision.outcome_rating is not None:
            lines.append(f"   Rating: {decision.outcome_rating}/10")
        if decision.lessons_learned:
            lines.append(f"   Lessons: {truncate(decision.lessons_learned, 100)}")
    else:
        if decision.confidence_level is not None:
            lines.append(f"   Confidence: {decision.confidence_level}/10")
        lines.append("   Status: In progress")
    if decision.tags:
        lines.append(f"   Tags: {', '.join(decision.tags[:5])}")
    return lines


def _medium_summary(decision: Decision) -> List[str]:
    lines = []
    if decision.situation:
        lines.append(f"   {truncate(decision.situation, 120)}")
    metrics = []
    if decision.alternatives:
        metrics.append(f"{len(decision.alternatives)} alternatives")
    if decision.confidence_level is not None:
        metrics.append(f"confidence: {decision.confidence_level}/10")
    if decision.is_reviewed:
        metrics.append("reviewed")
        if decision.outcome_rating is not None:
            metrics.append(f"rating: {decision.outcome_rating}/10")
    if metrics:
        lines.append(f"   {' | '.join(metrics)}")
    if decision.emotional_flags:
        lines.append(f"   Emotions: {', '.join(decision.emotional_flags[:3])}")
    if decision.is_reviewed:
        lines.append(f"   Outcome: {truncate(decision.actual_outcome or '', 100)}")
    elif decision.tags:
        lines.append(f"   Tags: {', '.join(decision.tags[:3])}")
    return lines


def _brief_summary(decision: Decision) -> List[str]:
    summary = []
    if decision.is_reviewed:
        summary.append("Reviewed")
        if decision.outcome_rating is not None:
            summary.append(f"({decision.outcome_rating}/10)")
    else:
        summary.append("In progress")
        if decision.confidence_level is not None:
            summary.append(f"(confidence: {decision.confidence_level}/10)")
    if decision.alternatives:
        summary.append(f"{len(decision.alternatives)} alternatives")
    if decision.emotional_flags:
        summary.append(decision.emotional_flags[0])
    lines = [f"   {' | '.join(summary)}"]
    if decision.tags:
        lines.append(f"   Tags: {', '.join(decision.tags[:3])}")
    return lines


__all__ = ["Verbosity", "build_anchor_block", "build_decision_digest"]
