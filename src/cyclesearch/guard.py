"""Read-only gate for generated SQL.

The conversational agent turns questions into SQL for charts.  Before any
such statement reaches the journal database it must pass
:func:`ensure_read_only`; this module never executes SQL itself.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from cyclesearch.exceptions import QueryValidationError

DEFAULT_MIN_CONFIDENCE = 0.8

_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT = re.compile(r"--[^\n]*")
_QUOTED = re.compile(r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|`[^`]*`|\[[^\]]*\]")
_WORD = re.compile(r"[A-Za-z_]+")

_FORBIDDEN = frozenset(
    {
        "ALTER",
        "ATTACH",
        "CREATE",
        "DELETE",
        "DETACH",
        "DROP",
        "GRANT",
        "INSERT",
        "MERGE",
        "PRAGMA",
        "REINDEX",
        "REVOKE",
        "TRUNCATE",
        "UPDATE",
        "VACUUM",
    }
)


def _strip(sql: str) -> str:
    # Literals first so comment markers inside strings survive; then comments.
    text = _QUOTED.sub(" '' ", sql)
    text = _BLOCK_COMMENT.sub(" ", text)
    return _LINE_COMMENT.sub(" ", text)


def ensure_read_only(sql: str) -> str:
    """Return *sql* stripped of surrounding whitespace if it is a single read-only query.

    Raises:
        QueryValidationError: The statement is empty, contains more than
            one statement, does not start with ``SELECT``/``WITH``, or uses
            a data- or schema-modifying keyword anywhere.
    """
    stripped = _strip(sql).strip().rstrip(";").strip()
    if not stripped:
        msg = "Empty query"
        raise QueryValidationError(msg)
    if ";" in stripped:
        msg = "Only a single statement is allowed"
        raise QueryValidationError(msg)

    words = [w.upper() for w in _WORD.findall(stripped)]
    if not words or words[0] not in ("SELECT", "WITH"):
        msg = "Only SELECT statements are allowed"
        raise QueryValidationError(msg)
    if words[0] == "WITH" and "SELECT" not in words:
        msg = "WITH clause does not resolve to a SELECT"
        raise QueryValidationError(msg)

    forbidden = sorted(_FORBIDDEN.intersection(words))
    if forbidden:
        msg = f"Query uses disallowed keyword(s): {', '.join(forbidden)}"
        raise QueryValidationError(msg)
    return sql.strip()


@dataclass(frozen=True, slots=True)
class GeneratedQuery:
    """A model-generated query with the model's confidence in it.

    Attributes:
        query: SQL text, or a clarifying question when confidence is low.
        confidence: Self-reported confidence in ``[0, 1]``.
    """

    query: str
    confidence: float

    @classmethod
    def from_json(cls, payload: str | dict[str, Any]) -> GeneratedQuery:
        """Parse the ``{"query": ..., "confidence": ...}`` object the agent returns."""
        try:
            data = json.loads(payload) if isinstance(payload, str) else payload
            return cls(query=str(data["query"]), confidence=float(data["confidence"]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            msg = f"Malformed generated query: {exc}"
            raise QueryValidationError(msg) from exc

    def needs_clarification(self, min_confidence: float = DEFAULT_MIN_CONFIDENCE) -> bool:
        return self.confidence < min_confidence

    def validated(self, min_confidence: float = DEFAULT_MIN_CONFIDENCE) -> str | None:
        """Return the checked SQL, or None when the caller should ask for clarification.

        Raises :class:`QueryValidationError` for a confident but mutating query.
        """
        if self.needs_clarification(min_confidence):
            return None
        return ensure_read_only(self.query)
