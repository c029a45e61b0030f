from __future__ import annotations

from typing import Optional

from ..journal.models import UserProfile
from .prompts import section


def build_profile_block(profile: Optional[UserProfile]) -> Optional[str]:
    """Profile section, or None when nothing in the profile is filled in."""

    if profile is None or profile.is_empty():
        return None

    lines = [""]
    name = (profile.name or "").strip()
    bio = (profile.description or "").strip()
    if name:
        lines.append(f"Name: {name}")
    if bio:
        lines.append(f"Bio: {bio}")

    answered = [item for item in profile.context_items if (item.answer or "").strip()]
    if answered:
        lines.extend(["", "Additional Context:"])
        for item in answered:
            lines.append(f"- {item.question}")
            lines.append(f"  {item.answer.strip()}")

    if len(lines) == 1:
        return None
    return section(
        "USER PROFILE",
        lines,
        footer="Use this to personalize your coaching. Refer to the user by name when natural.",
    )


__all__ = ["build_profile_block"]
