"""Past-decision block built from retrieval hits or the recency fallback."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..journal.models import Decision
from .prompts import section, truncate

NON_SEMANTIC_MARKER = "recent entry, not a semantic match"

_MS_PER_DAY = 24 * 60 * 60 * 1000


@dataclass
class RelatedDecision:
    """A past decision offered to the model. ``similarity`` is 0 for recency fallbacks."""

    decision: Decision
    similarity: float = 0.0

    @property
    def is_semantic(self) -> bool:
        return self.similarity > 0


def relative_date(timestamp_ms: int, now_ms: Optional[int] = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    days = max(0, (now_ms - int(timestamp_ms)) // _MS_PER_DAY)
    if days == 0:
        return "today"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        return f"{days // 7} weeks ago"
    if days < 365:
        return f"{days // 30} months ago"
    return f"{days // 365} years ago"


def build_history_block(related: Sequence[RelatedDecision], now_ms: Optional[int] = None) -> str:
    if not related:
        return ""

    semantic = any(item.is_semantic for item in related)
    if semantic:
        intro = f"I found {len(related)} similar decisions from the user's history:"
        title = "RELEVANT PAST DECISIONS"
    else:
        intro = (
            f"No semantically similar decisions were found. These are the user's "
            f"{len(related)} most recent entries, listed for background only:"
        )
        title = "RECENT PAST DECISIONS"

    lines: List[str] = ["", intro, ""]
    for idx, item in enumerate(related, start=1):
        decision = item.decision
        when = relative_date(decision.created_at, now_ms)
        if item.is_semantic:
            marker = f"{round(item.similarity * 100)}% similar, {when}"
        else:
            marker = f"{NON_SEMANTIC_MARKER}, {when}"
        lines.append(f"{idx}. {decision.problem_statement or 'Untitled decision'} ({marker})")

        if decision.is_reviewed:
            lines.append(f"   Outcome: {truncate(decision.actual_outcome or '', 150)}")
            if decision.outcome_rating is not None:
                lines.append(f"   Rating: {decision.outcome_rating}/10")
        elif decision.confidence_level is not None:
            lines.append(f"   Confidence: {decision.confidence_level}/10")
        if decision.lessons_learned:
            lines.append(f"   Lesson: {truncate(decision.lessons_learned, 100)}")
        if decision.tags:
            lines.append(f"   Tags: {', '.join(decision.tags[:3])}")
        lines.append("")

    footer = (
        "Reference these when they genuinely relate to the current discussion."
        if semantic
        else "Do not treat these as evidence of a pattern; they were chosen by date, not relevance."
    )
    return section(title, lines, footer=footer)


__all__ = ["NON_SEMANTIC_MARKER", "RelatedDecision", "build_history_block", "relative_date"]
