"""Enumerations for the Canonical Request Model.

Requests are built by a form-driven UI, so operator values mirror the SQL
tokens they render to (``"NOT IN"``, ``"IS NULL"``) rather than symbolic
names.  The operator families below are used by both the request validator
and the filter builder.
"""

from __future__ import annotations

from enum import Enum

# ---------------------------------------------------------------------------
# Aggregations
# ---------------------------------------------------------------------------


class AggregateFunction(str, Enum):
    """Aggregate functions a request may apply to a column."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MAX = "MAX"
    MIN = "MIN"
    COUNT_DISTINCT = "COUNT_DISTINCT"


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class FilterOperator(str, Enum):
    """Filter operators, valued by their SQL spelling."""

    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    LIKE = "LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"
    BETWEEN = "BETWEEN"


class LogicalJoin(str, Enum):
    """How a filter combines with the filters before it."""

    AND = "AND"
    OR = "OR"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


NULL_CHECK_OPERATORS: frozenset[FilterOperator] = frozenset(
    {FilterOperator.IS_NULL, FilterOperator.IS_NOT_NULL}
)

LIST_OPERATORS: frozenset[FilterOperator] = frozenset(
    {FilterOperator.IN, FilterOperator.NOT_IN}
)

COMPARISON_OPERATORS: frozenset[FilterOperator] = frozenset(
    {
        FilterOperator.EQ,
        FilterOperator.NE,
        FilterOperator.GT,
        FilterOperator.LT,
        FilterOperator.GTE,
        FilterOperator.LTE,
    }
)

# Aggregate names recognised in free SQL text (rewriter, repairs).
SQL_AGGREGATE_NAMES: frozenset[str] = frozenset(
    {"COUNT", "SUM", "AVG", "MAX", "MIN", "COUNT_BIG", "STDEV", "VAR", "STRING_AGG"}
)
