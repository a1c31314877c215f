"""Prompt construction for session summaries."""

from __future__ import annotations

import json
from typing import Any

SUMMARY_WORD_LIMIT = 150

_NOT_FILLED = "N/A"


def _value(value: Any) -> str:
    if value is None:
        return _NOT_FILLED
    text = str(value).strip()
    return text or _NOT_FILLED


def _minutes_worked(stats: dict[str, Any]) -> int | None:
    per_cycle = stats.get("workMinutes")
    completed = stats.get("cyclesCompleted")
    if isinstance(per_cycle, int | float) and isinstance(completed, int | float):
        return int(per_cycle * completed)
    return None


def session_summary_prompt(session_json: str) -> str:
    """Build the summarization prompt for a serialized session.

    Text that is not a session serialization is summarized as-is.
    """
    try:
        data = json.loads(session_json)
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, dict):
        return (
            f"Summarize this work session in {SUMMARY_WORD_LIMIT} words or less, "
            f"focusing on key objectives, outcomes, and insights:\n\n{session_json}"
        )

    intentions = data.get("intentions") or {}
    review = data.get("review") or {}
    stats = data.get("stats") or {}
    minutes = _minutes_worked(stats)

    return f"""Summarize this work session in {SUMMARY_WORD_LIMIT} words or less, focusing on key objectives, outcomes, and insights:

Intentions:
- Objective: {_value(intentions.get("objective"))}
- Importance: {_value(intentions.get("importance"))}
- Definition of Done: {_value(intentions.get("definitionOfDone"))}
- Hazards: {_value(intentions.get("hazards"))}

Review:
- Accomplishments: {_value(review.get("accomplishments"))}
- Comparison to normal output: {_value(review.get("comparison"))}
- Obstacles: {_value(review.get("obstacles"))}
- Successes: {_value(review.get("successes"))}
- Takeaways: {_value(review.get("takeaways"))}

Stats: {_value(stats.get("cyclesCompleted"))}/{_value(stats.get("cyclesPlanned"))} cycles completed; Worked for {_value(minutes)} minutes total

If any of the above fields say {_NOT_FILLED}, it means that the user did not fill in that field."""
