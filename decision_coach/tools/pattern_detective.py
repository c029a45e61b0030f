"""Finds similar past decisions and summarizes what they have in common."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .analytics import FrequencyPattern, emotion_patterns, mean, tag_patterns
from .base import (
    CoachingTool,
    FieldType,
    FieldValidation,
    ToolCategory,
    ToolExecutionContext,
    ToolInputField,
    ToolResult,
)

SEARCH_THRESHOLD = 0.5
DEFAULT_LIMIT = 5


class PatternDetectiveTool(CoachingTool):
    id = "pattern-detective"
    name = "Pattern Detective"
    description = "Find similar past decisions and spot recurring patterns in your decision history"
    category = ToolCategory.PATTERN
    icon = "Fingerprint"
    tags = ("patterns", "analysis", "history", "learning")
    input_fields = (
        ToolInputField(
            name="query",
            type=FieldType.TEXT,
            label="What patterns are you looking for?",
            placeholder='e.g. "career decisions", "times I felt anxious"',
            required=True,
            validation=FieldValidation(min_length=3, max_length=500),
        ),
        ToolInputField(
            name="limit",
            type=FieldType.NUMBER,
            label="How many similar decisions to analyze?",
            placeholder=str(DEFAULT_LIMIT),
            validation=FieldValidation(min=3, max=20),
        ),
    )
    system_prompt = """You are interpreting a Pattern Detective analysis: similar past decisions and the patterns they share.

Your role:
1. Point out the ONE most interesting pattern
2. Ask a focused question about what it reveals
3. Keep it to two or three sentences

Do not list all the data, repeat the tool output, or give generic advice."""
    user_prompt_template = 'I searched for "{{query}}". What stands out to you about these patterns?'

    def __init__(self, retriever: Any) -> None:
        self.retriever = retriever

    async def run(self, context: ToolExecutionContext) -> ToolResult:
        query = str(
            context.inputs.get("query")
            or (context.current_decision.problem_statement if context.current_decision else "")
            or "recent decisions"
        )
        limit = int(context.inputs.get("limit") or DEFAULT_LIMIT)

        hits = await self.retriever.search_similar(
            query, limit, threshold=SEARCH_THRESHOLD, filters={"is_archived": False}
        )
        by_id = {decision.id: decision for decision in context.all_decisions}
        matches = [(by_id[hit.entry_id], hit.similarity) for hit in hits if hit.entry_id in by_id]

        if not matches:
            markdown = "\n".join(
                [
                    "## Pattern Detective",
                    "",
                    f'No similar decisions found for "{query}".',
                    "",
                    "Try:",
                    "- Different keywords",
                    '- A broader phrase ("work" rather than a project name)',
                    "- Logging a few more decisions first (3-5 works well)",
                ]
            )
            return ToolResult(success=True, markdown=markdown, data={"query": query}, metadata={"decisions_analyzed": 0})

        decisions = [decision for decision, _ in matches]
        tags = tag_patterns(decisions)
        emotions = emotion_patterns(decisions)
        avg_confidence = mean([d.confidence_level for d in decisions if d.confidence_level is not None])
        reviewed = [d for d in decisions if d.is_reviewed]
        avg_outcome = mean([d.outcome_rating for d in reviewed if d.outcome_rating is not None])
        insights = build_insights(avg_confidence, avg_outcome, tags, emotions)

        data: Dict[str, Any] = {
            "query": query,
            "similar_decisions": [
                {
                    "id": decision.id,
                    "problem_statement": decision.problem_statement,
                    "similarity": similarity,
                    "confidence": decision.confidence_level,
                    "outcome": decision.actual_outcome,
                    "outcome_rating": decision.outcome_rating,
                    "tags": decision.tags,
                    "emotional_flags": decision.emotional_flags,
                }
                for decision, similarity in matches
            ],
            "patterns": {
                "tags": [{"tag": p.label, "count": p.count} for p in tags],
                "emotions": [{"emotion": p.label, "count": p.count} for p in emotions],
            },
            "statistics": {
                "avg_confidence": avg_confidence,
                "avg_outcome": avg_outcome,
                "reviewed_count": len(reviewed),
                "total_analyzed": len(decisions),
            },
            "insights": insights,
        }
        markdown = format_patterns(query, matches, tags[:5], emotions[:5], avg_confidence, avg_outcome, insights, len(reviewed))
        return ToolResult(
            success=True,
            data=data,
            markdown=markdown,
            metadata={"decisions_analyzed": len(decisions), "rag_results_used": len(hits)},
        )


def build_insights(
    avg_confidence: Optional[float],
    avg_outcome: Optional[float],
    tags: List[FrequencyPattern],
    emotions: List[FrequencyPattern],
) -> List[str]:
    insights: List[str] = []
    if avg_confidence is not None:
        if avg_confidence >= 7.5:
            insights.append(f"You tend to be highly confident in these decisions (avg {avg_confidence:.1f}/10)")
        elif avg_confidence <= 5:
            insights.append(f"These decisions show lower confidence (avg {avg_confidence:.1f}/10)")
    if avg_confidence is not None and avg_outcome is not None:
        gap = abs(avg_confidence - avg_outcome)
        if gap > 2:
            insights.append(f"Confidence-outcome gap: {gap:.1f} points (possible over/underconfidence)")
    if tags:
        insights.append(f'Most common category: "{tags[0].label}" ({tags[0].count} decisions)')
    if emotions:
        insights.append(f'Most common emotion: "{emotions[0].label}" ({emotions[0].count} times)')
    return insights


def format_patterns(
    query: str,
    matches: list,
    tags: List[FrequencyPattern],
    emotions: List[FrequencyPattern],
    avg_confidence: Optional[float],
    avg_outcome: Optional[float],
    insights: List[str],
    reviewed_count: int,
) -> str:
    lines = ["## Pattern Detective Results", "", f'**Query:** "{query}"', f"**Analyzed:** {len(matches)} similar decisions"]
    if insights:
        lines.extend(["", "### Key Insights", ""])
        lines.extend(f"- {insight}" for insight in insights)

    lines.extend(["", "### Similar Decisions", ""])
    for idx, (decision, similarity) in enumerate(matches[:5], start=1):
        lines.append(f"{idx}. **{decision.problem_statement or 'Untitled'}** ({round(similarity * 100)}% match)")
        if decision.is_reviewed and decision.outcome_rating is not None:
            lines.append(f"   - Outcome: {decision.outcome_rating}/10")
        elif decision.confidence_level is not None:
            lines.append(f"   - Confidence: {decision.confidence_level}/10")
        if decision.tags:
            lines.append(f"   - Tags: {', '.join(decision.tags[:3])}")

    if tags:
        lines.extend(["", "### Category Patterns", ""])
        lines.extend(f"- **{p.label}**: {p.count} decisions" for p in tags)
    if emotions:
        lines.extend(["", "### Emotional Patterns", ""])
        lines.extend(f"- **{p.label}**: {p.count} occurrences" for p in emotions)

    lines.extend(["", "### Statistics", ""])
    if avg_confidence is not None:
        lines.append(f"- Average confidence: {avg_confidence:.1f}/10")
    if avg_outcome is not None:
        lines.append(f"- Average outcome: {avg_outcome:.1f}/10")
        lines.append(f"- Reviewed decisions: {reviewed_count}")
    return "\n".join(lines)


__all__ = ["PatternDetectiveTool", "build_insights", "format_patterns"]
