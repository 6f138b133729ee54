"""Literal and filter SQL builders.

``LiteralRenderer`` implements value coercion: a filter value is tried, in
order, as null, boolean, number, date-like string and finally as a quoted
string.  ``FilterBuilder`` renders each FilterPredicate with
operator-specific formatting and combines them left to right.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from guardql.compile.context import CompilationContext
from guardql.schema.expressions import (
    COMPARISON_OPERATORS,
    LIST_OPERATORS,
    NULL_CHECK_OPERATORS,
    FilterOperator,
    LogicalJoin,
)
from guardql.schema.request import FilterPredicate

_NUMERIC_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_DATE_LIKE_RE = re.compile(
    r"\d{4}-\d{2}-\d{2}(?:[ T]\d{2}:\d{2}(?::\d{2}(?:\.\d{1,7})?)?)?"
)
_BOOLEAN_WORDS = {"true": True, "false": False}


class LiteralRenderer:
    """Renders Python values as SQL literals.

    Args:
        ctx: Compilation context (for dialect-specific literal forms).
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def render(self, value: Any) -> str:
        compiler = self._ctx.compiler
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return compiler.render_boolean(value)
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, (date, datetime)):
            return compiler.render_temporal(value)

        text = str(value)
        stripped = text.strip()
        if stripped.lower() in _BOOLEAN_WORDS:
            return compiler.render_boolean(_BOOLEAN_WORDS[stripped.lower()])
        if _NUMERIC_RE.fullmatch(stripped):
            return stripped
        if _DATE_LIKE_RE.fullmatch(stripped):
            return compiler.render_string(stripped)
        return compiler.render_string(text)


class FilterBuilder:
    """Compiles FilterPredicates to a WHERE-clause fragment.

    Args:
        ctx: Compilation context.
        literals: Renderer for operand values.
    """

    def __init__(self, ctx: CompilationContext, literals: LiteralRenderer) -> None:
        self._ctx = ctx
        self._lit = literals

    def build_all(self, filters: list[FilterPredicate]) -> str | None:
        """Combine ``filters`` left to right with each filter's join keyword.

        The first filter's join is ignored.  When any OR is present the whole
        group is parenthesized so it cannot loosen the conditions ANDed next
        to it.
        """
        if not filters:
            return None
        parts = [self.build(filters[0])]
        for predicate in filters[1:]:
            parts.append(predicate.join.value)
            parts.append(self.build(predicate))
        combined = " ".join(parts)
        if len(filters) > 1 and any(p.join is LogicalJoin.OR for p in filters[1:]):
            return f"({combined})"
        return combined

    def build(self, predicate: FilterPredicate) -> str:
        """Compile a single predicate."""
        column = self._ctx.compiler.quote_column(predicate.column)
        op = predicate.operator

        if op in NULL_CHECK_OPERATORS:
            return f"{column} {op.value}"
        if op is FilterOperator.BETWEEN:
            low = self._lit.render(predicate.value)
            high = self._lit.render(predicate.value2)
            return f"{column} BETWEEN {low} AND {high}"
        if op in LIST_OPERATORS:
            values = predicate.value if isinstance(predicate.value, list) else [predicate.value]
            rendered = ", ".join(self._lit.render(v) for v in values)
            return f"{column} {op.value} ({rendered})"
        if op is FilterOperator.LIKE:
            pattern = self._ctx.compiler.render_string(f"%{predicate.value}%")
            return f"{column} LIKE {pattern}"
        if op in COMPARISON_OPERATORS:
            return f"{column} {op.value} {self._lit.render(predicate.value)}"
        raise ValueError(f"Unhandled filter operator: {op!r}")
