"""Compares stated confidence with how reviewed decisions actually turned out."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import List

from .analytics import CalibrationBucket, brier_score, calibration_curve
from .base import CoachingTool, ToolCategory, ToolExecutionContext, ToolResult

MIN_REVIEWED = 3
SIGNIFICANT_GAP = 0.15

_RECOMMENDATIONS = {
    "overconfident": [
        "Before settling on high confidence, name what could go wrong",
        "Look for evidence against your choice, not only evidence for it",
        "When you feel 80% sure or more, list three ways you could be wrong",
    ],
    "underconfident": [
        "Your outcomes beat your expectations; give your judgment more weight",
        "Keep a record of wins in the areas where you do well",
        "When unsure, check your past success rate on similar choices",
    ],
    "mixed": [
        "Calibration changes with confidence level; watch which bands drift",
        "Note which kinds of decisions you over- or underestimate",
    ],
    "well-calibrated": [
        "Your confidence tracks reality; keep logging outcomes to stay that way",
        "Your predictions match how things turn out consistently",
    ],
}

_FINDINGS = {
    "overconfident": "**You tend to be overconfident.** Your confidence runs higher than your outcomes.",
    "underconfident": "**You tend to be underconfident.** Your outcomes are better than your confidence suggests.",
    "mixed": "**Mixed calibration.** Overconfident at some levels and underconfident at others.",
    "well-calibrated": "**Well-calibrated.** Your confidence levels match your outcomes.",
}


@dataclass
class CalibrationAnalysis:
    interpretation: str
    main_issue: str
    recommendations: List[str] = field(default_factory=list)
    gaps: List[float] = field(default_factory=list)


def interpret_brier(score: float) -> str:
    if score < 0.15:
        return "Excellent calibration"
    if score < 0.25:
        return "Good calibration"
    if score < 0.35:
        return "Fair calibration, room for improvement"
    return "Poor calibration, significant mismatch"


def analyze_calibration(score: float, buckets: List[CalibrationBucket]) -> CalibrationAnalysis:
    over = under = 0
    total_gap = 0.0
    gaps = []
    for bucket in buckets:
        gap = bucket.gap
        gaps.append(gap * 10)
        if abs(gap) > SIGNIFICANT_GAP:
            if gap > 0:
                over += 1
            else:
                under += 1
            total_gap += abs(gap)

    main_issue = "well-calibrated"
    if over > under and over >= 2:
        main_issue = "overconfident"
    elif under > over and under >= 2:
        main_issue = "underconfident"
    elif over and under and buckets and total_gap / len(buckets) > SIGNIFICANT_GAP:
        main_issue = "mixed"

    return CalibrationAnalysis(
        interpretation=interpret_brier(score),
        main_issue=main_issue,
        recommendations=list(_RECOMMENDATIONS[main_issue]),
        gaps=gaps,
    )


def format_calibration(score: float, buckets: List[CalibrationBucket], analysis: CalibrationAnalysis, total: int) -> str:
    lines = [
        "## Calibration Coach Results",
        "",
        f"**Decisions analyzed:** {total}",
        "",
        "### Brier Score",
        "",
        f"**Score:** {score:.3f} ({analysis.interpretation})",
        "- Range: 0 (perfect) to 1 (worst)",
        "- Below 0.20 is good calibration",
        "- Above 0.30 needs improvement",
        "",
        "### Main Finding",
        "",
        _FINDINGS[analysis.main_issue],
        "",
        "### Calibration Curve",
        "",
        "| Confidence Level | Actual Success Rate | Count | Gap |",
        "|-----------------|---------------------|-------|-----|",
    ]
    for bucket, gap in zip(buckets, analysis.gaps):
        gap_text = f"+{gap:.1f} (over)" if gap > 0 else f"{gap:.1f} (under)"
        lines.append(f"| {bucket.confidence}% | {bucket.actual:.1f}% | {bucket.count} | {gap_text} |")
    lines.extend(["", "### Recommendations", ""])
    lines.extend(f"- {item}" for item in analysis.recommendations)
    return "\n".join(lines)


class CalibrationCoachTool(CoachingTool):
    id = "calibration-coach"
    name = "Calibration Coach"
    description = "Check whether your confidence levels match reality. Are you over- or underconfident?"
    category = ToolCategory.PATTERN
    icon = "Target"
    tags = ("calibration", "confidence", "accuracy", "learning")
    requires_reviewed_decisions = True
    system_prompt = """You are interpreting a Calibration Coach analysis of the user's confidence calibration.

Your role:
1. Name the MAIN calibration issue (overconfidence, underconfidence, or well-calibrated)
2. Ask ONE question that helps them calibrate better
3. Keep it to two or three sentences

Do not explain Brier scores, list every recommendation, or repeat the data."""
    user_prompt_template = "What is the main thing I should focus on to improve my calibration?"

    async def run(self, context: ToolExecutionContext) -> ToolResult:
        reviewed = [
            decision
            for decision in context.all_decisions
            if decision.is_reviewed and decision.outcome_rating is not None and decision.confidence_level is not None
        ]
        if len(reviewed) < MIN_REVIEWED:
            markdown = "\n".join(
                [
                    "## Calibration Coach",
                    "",
                    f"Not enough data yet. Calibration needs at least {MIN_REVIEWED} reviewed decisions with outcome ratings.",
                    "",
                    f"**Current status:** {len(reviewed)}/{MIN_REVIEWED} reviewed decisions",
                    "",
                    "**Next steps:**",
                    "1. Revisit past decisions and record what actually happened",
                    "2. Rate how each one turned out (1-10)",
                    f"3. Run this again once {MIN_REVIEWED} or more are reviewed",
                ]
            )
            return ToolResult(success=True, markdown=markdown, metadata={"decisions_analyzed": len(reviewed)})

        score = brier_score(reviewed)
        buckets = calibration_curve(reviewed, min_decisions=MIN_REVIEWED) or []
        analysis = analyze_calibration(score, buckets)
        return ToolResult(
            success=True,
            data={
                "brier_score": score,
                "calibration_curve": [asdict(bucket) for bucket in buckets],
                "analysis": asdict(analysis),
                "total_decisions": len(reviewed),
            },
            markdown=format_calibration(score, buckets, analysis, len(reviewed)),
            metadata={"decisions_analyzed": len(reviewed)},
        )


__all__ = ["CalibrationAnalysis", "CalibrationCoachTool", "analyze_calibration", "interpret_brier"]
