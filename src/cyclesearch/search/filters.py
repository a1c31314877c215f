"""Filter AST — store-agnostic metadata filters and an evaluator for local stores."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FilterOp(Enum):
    """Comparison operators for metadata filtering."""

    EQ = "eq"
    NE = "ne"
    IN = "in"


class LogicalOp(Enum):
    """Logical combinators for grouping filter expressions."""

    AND = "and"
    OR = "or"


@dataclass(frozen=True, slots=True)
class Comparison:
    """A single field comparison (e.g. ``field == value``)."""

    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True, slots=True)
class LogicalGroup:
    """A logical combination of filter expressions."""

    op: LogicalOp
    expressions: list[FilterExpression]


FilterExpression = Comparison | LogicalGroup
"""Either a leaf :class:`Comparison` or a :class:`LogicalGroup`."""


def eq(field: str, value: Any) -> Comparison:
    """``field == value``."""
    return Comparison(field=field, op=FilterOp.EQ, value=value)


def ne(field: str, value: Any) -> Comparison:
    """``field != value``."""
    return Comparison(field=field, op=FilterOp.NE, value=value)


def in_(field: str, values: list[Any]) -> Comparison:
    """``field IN values``."""
    return Comparison(field=field, op=FilterOp.IN, value=values)


def and_(*exprs: FilterExpression) -> LogicalGroup:
    """Combine expressions with AND."""
    return LogicalGroup(op=LogicalOp.AND, expressions=list(exprs))


def or_(*exprs: FilterExpression) -> LogicalGroup:
    """Combine expressions with OR."""
    return LogicalGroup(op=LogicalOp.OR, expressions=list(exprs))


def build_filter(*, level: str | None = None, session_id: str | None = None) -> FilterExpression | None:
    """Build the level/session filter used by search; None when unconstrained."""
    parts: list[FilterExpression] = []
    if level is not None:
        parts.append(eq("level", level))
    if session_id is not None:
        parts.append(eq("session_id", session_id))
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return and_(*parts)


def matches(expr: FilterExpression, metadata: dict[str, Any]) -> bool:
    """Evaluate *expr* against a metadata dict.

    Examples::

        matches(eq("level", "cycle"), {"level": "cycle"})
        # True

        matches(and_(eq("level", "field"), ne("cycle_id", None)), {"level": "field"})
        # False
    """
    if isinstance(expr, Comparison):
        actual = metadata.get(expr.field)
        if expr.op == FilterOp.EQ:
            return actual == expr.value
        if expr.op == FilterOp.NE:
            return actual != expr.value
        return actual in expr.value

    results = (matches(child, metadata) for child in expr.expressions)
    return all(results) if expr.op == LogicalOp.AND else any(results)
