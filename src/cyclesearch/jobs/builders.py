"""Derive embed jobs from session and cycle rows.

Text builders are pure; the ``enqueue_*`` helpers make one
:meth:`JobStore.enqueue` call per derived job and nothing else.  Rows are
plain mappings of column name to value, as read from the journal database.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cyclesearch.labels import ENERGY_LABELS, STATUS_LABELS, enum_label, field_label, is_embeddable
from cyclesearch.models.jobs import Level, record_key

if TYPE_CHECKING:
    from collections.abc import Mapping

    from cyclesearch.jobs.store import JobStore
    from cyclesearch.search.protocols import VectorStore

logger = logging.getLogger(__name__)

SESSIONS_TABLE = "sessions"
CYCLES_TABLE = "cycles"

_SEGMENT_SEPARATOR = ". "


@dataclass(frozen=True, slots=True)
class FieldText:
    """One embeddable column value with its label."""

    column: str
    label: str
    text: str


def _present(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


# ------------------------------------------------------------------
# Pure text builders
# ------------------------------------------------------------------


def field_texts(row: Mapping[str, Any]) -> list[FieldText]:
    """Return the labelled, non-blank text columns of *row*."""
    out: list[FieldText] = []
    for column, value in row.items():
        if not _present(value) or not is_embeddable(column):
            continue
        label = field_label(column)
        if label is None:
            continue
        out.append(FieldText(column=column, label=label, text=value))
    return out


def cycle_text(cycle: Mapping[str, Any]) -> str:
    """Combine a cycle's plan and review into ``START: … END: …`` text.

    Absent fields are left out entirely, as is a segment with no fields.
    Returns an empty string for a cycle with nothing to say.
    """
    plan = [
        f"Goal: {cycle['plan_goal']}" if _present(cycle.get("plan_goal")) else None,
        f"First step: {cycle['plan_first_step']}" if _present(cycle.get("plan_first_step")) else None,
        f"Hazards: {cycle['plan_hazards_cycle']}" if _present(cycle.get("plan_hazards_cycle")) else None,
    ]
    energy = enum_label(cycle.get("plan_energy"), ENERGY_LABELS)
    morale = enum_label(cycle.get("plan_morale"), ENERGY_LABELS)
    plan.append(f"Energy: {energy}" if energy else None)
    plan.append(f"Morale: {morale}" if morale else None)

    status = enum_label(cycle.get("review_status"), STATUS_LABELS)
    review = [
        f"Status: {status}" if status else None,
        f"Noteworthy: {cycle['review_noteworthy']}" if _present(cycle.get("review_noteworthy")) else None,
        f"Distractions: {cycle['review_distractions']}"
        if _present(cycle.get("review_distractions"))
        else None,
        f"Improvement: {cycle['review_improvement']}" if _present(cycle.get("review_improvement")) else None,
    ]

    segments = []
    plan_text = _SEGMENT_SEPARATOR.join(p for p in plan if p)
    review_text = _SEGMENT_SEPARATOR.join(r for r in review if r)
    if plan_text:
        segments.append(f"START: {plan_text}")
    if review_text:
        segments.append(f"END: {review_text}")
    return " ".join(segments)


def session_text(session: Mapping[str, Any]) -> str:
    """Serialize a session's intentions, review and stats to JSON.

    The result is summarized by the provider before it is embedded.
    """
    payload = {
        "intentions": {
            "objective": session.get("plan_objective"),
            "importance": session.get("plan_importance"),
            "definitionOfDone": session.get("plan_done_definition"),
            "hazards": session.get("plan_hazards"),
            "miscNotes": session.get("plan_misc_notes"),
        },
        "review": {
            "accomplishments": session.get("review_accomplishments"),
            "comparison": session.get("review_comparison"),
            "obstacles": session.get("review_obstacles"),
            "successes": session.get("review_successes"),
            "takeaways": session.get("review_takeaways"),
        },
        "stats": {
            "cyclesPlanned": session.get("cycles_planned"),
            "cyclesCompleted": session.get("cycles_completed"),
            "workMinutes": session.get("work_minutes"),
        },
    }
    return json.dumps(payload)


# ------------------------------------------------------------------
# Enqueue helpers
# ------------------------------------------------------------------


async def _already_indexed(
    key: str,
    store: JobStore,
    vector_store: VectorStore | None,
) -> bool:
    if await store.has_active_job(key):
        logger.debug("Embedding job already queued: %s", key)
        return True
    if vector_store is not None:
        fetched = await vector_store.fetch([key])
        if fetched and fetched[0] is not None:
            logger.debug("Embedding already stored: %s", key)
            return True
    return False


async def enqueue_field_jobs(
    store: JobStore,
    table: str,
    row: Mapping[str, Any],
    session_id: str,
    cycle_id: str | None = None,
    *,
    skip_existing: bool = False,
    vector_store: VectorStore | None = None,
) -> list[str]:
    """Enqueue one ``field`` job per embeddable column of *row*.

    *row* must carry its primary key under ``"id"``.  With
    *skip_existing*, columns that already have an active job or a stored
    vector are skipped.
    """
    row_id = str(row["id"])
    job_ids: list[str] = []
    for ft in field_texts(row):
        if skip_existing:
            key = record_key(Level.FIELD, session_id=session_id, row_id=row_id, column_name=ft.column)
            if await _already_indexed(key, store, vector_store):
                continue
        job_id = await store.enqueue(
            Level.FIELD,
            session_id,
            table,
            row_id,
            ft.text,
            cycle_id=cycle_id,
            column_name=ft.column,
            field_label=ft.label,
        )
        job_ids.append(job_id)
    return job_ids


async def enqueue_cycle_job(
    store: JobStore,
    cycle: Mapping[str, Any],
    *,
    skip_existing: bool = False,
    vector_store: VectorStore | None = None,
) -> str | None:
    """Enqueue the ``cycle`` job for *cycle*; None if there is no text or it is already indexed."""
    text = cycle_text(cycle)
    if not text:
        return None
    cycle_id = str(cycle["id"])
    session_id = str(cycle["session_id"])
    if skip_existing:
        key = record_key(Level.CYCLE, session_id=session_id, row_id=cycle_id, cycle_id=cycle_id)
        if await _already_indexed(key, store, vector_store):
            return None
    return await store.enqueue(Level.CYCLE, session_id, CYCLES_TABLE, cycle_id, text, cycle_id=cycle_id)


async def enqueue_session_job(
    store: JobStore,
    session: Mapping[str, Any],
    *,
    skip_existing: bool = False,
    vector_store: VectorStore | None = None,
) -> str | None:
    """Enqueue the ``session`` job for *session*; None if it is already indexed."""
    session_id = str(session["id"])
    if skip_existing:
        key = record_key(Level.SESSION, session_id=session_id, row_id=session_id)
        if await _already_indexed(key, store, vector_store):
            return None
    return await store.enqueue(Level.SESSION, session_id, SESSIONS_TABLE, session_id, session_text(session))
