"""Human-readable labels for embeddable journal columns."""

from __future__ import annotations

FIELD_LABELS: dict[str, str] = {
    # sessions - planning
    "plan_objective": "What am I trying to accomplish?",
    "plan_importance": "Why is this important and valuable?",
    "plan_done_definition": "How will I know this is complete?",
    "plan_hazards": "Any risks / hazards? (Potential distractions, procrastination, etc.)",
    "plan_misc_notes": "Anything else noteworthy?",
    # sessions - review
    "review_accomplishments": "What did I get done in this session?",
    "review_comparison": "How did this compare to my normal work output?",
    "review_obstacles": "Did I get bogged down? Where?",
    "review_successes": "What went well? How can I replicate this in the future?",
    "review_takeaways": "Any other takeaways? Lessons to share with others?",
    # cycles - planning
    "plan_goal": "What am I trying to accomplish this cycle?",
    "plan_first_step": "How will I get started?",
    "plan_hazards_cycle": "Any hazards present?",
    # cycles - review
    "review_noteworthy": "Anything noteworthy?",
    "review_distractions": "Any distractions?",
    "review_improvement": "Things to improve for next cycle?",
}

ENERGY_LABELS: tuple[str, ...] = ("Low", "Medium", "High")
"""Stored as 0/1/2 for both energy and morale."""

STATUS_LABELS: tuple[str, ...] = ("miss", "partial", "hit")


def field_label(column: str) -> str | None:
    return FIELD_LABELS.get(column)


def is_embeddable(column: str) -> bool:
    return column in FIELD_LABELS


def embeddable_columns() -> list[str]:
    return list(FIELD_LABELS)


def enum_label(value: int | str | None, labels: tuple[str, ...]) -> str | None:
    """Map a stored index (or an already-rendered label) to its label.

    Returns None for missing or unrecognized values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return labels[value] if 0 <= value < len(labels) else None
    text = str(value).strip()
    if text.isdigit():
        return enum_label(int(text), labels)
    for label in labels:
        if label.lower() == text.lower():
            return label
    return None
