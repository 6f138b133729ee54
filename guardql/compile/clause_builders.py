"""Clause-level SQL builders.

Each class handles exactly one SQL clause of a synthesized statement.

Classes
-------
SelectClauseBuilder   - ``SELECT [DISTINCT] [TOP n] <columns>``
FromClauseBuilder     - ``FROM <first relation>``
JoinClauseBuilder     - ``INNER JOIN <relation> ON 1=1``
WhereClauseBuilder    - policy conditions followed by the filter group
GroupByClauseBuilder  - ``GROUP BY <columns>``
OrderByClauseBuilder  - ``ORDER BY <column> <direction>, ...``
"""
from __future__ import annotations

from guardql.compile.context import CompilationContext
from guardql.compile.expression_builder import FilterBuilder
from guardql.schema.column_reference import ColumnReference
from guardql.schema.expressions import AggregateFunction
from guardql.schema.request import Aggregation, CanonicalRequest, SortKey


class SelectClauseBuilder:
    """Builds the ``SELECT [DISTINCT] [TOP n] …`` clause.

    Aggregations come first, then every projected column an aggregation does
    not already cover.  An empty list renders as ``*``.
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, request: CanonicalRequest) -> str:
        head = ["SELECT"]
        if request.distinct:
            head.append("DISTINCT")
        if request.limit:
            head.append(self._ctx.compiler.top_clause(request.limit))

        columns = [self._build_aggregation(agg) for agg in request.aggregations]
        for relation, column in request.projected_columns:
            if self._is_aggregated(request.aggregations, relation, column):
                continue
            columns.append(self._ctx.compiler.quote_column(f"{relation}.{column}"))

        head.append(", ".join(columns) if columns else "*")
        return " ".join(head)

    def _build_aggregation(self, agg: Aggregation) -> str:
        compiler = self._ctx.compiler
        if not agg.column:
            expr = "COUNT(*)"
        elif agg.function is AggregateFunction.COUNT_DISTINCT:
            expr = f"COUNT(DISTINCT {compiler.quote_column(agg.column)})"
        else:
            expr = f"{agg.function.value}({compiler.quote_column(agg.column)})"
        if agg.alias:
            return f"{expr} AS {compiler.quote_identifier(agg.alias)}"
        return expr

    @staticmethod
    def _is_aggregated(aggregations: list[Aggregation], relation: str, column: str) -> bool:
        return any(
            agg.column and ColumnReference.parse(agg.column).matches(relation, column)
            for agg in aggregations
        )


class FromClauseBuilder:
    """Builds the ``FROM <relation>`` fragment for the first relation."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, relation: str) -> str:
        return f"FROM {self._ctx.compiler.quote_identifier(relation)}"


class JoinClauseBuilder:
    """Builds ``INNER JOIN <relation> ON 1=1`` for each additional relation.

    No foreign-key metadata is available here, so joins carry no key
    condition: a multi-relation request is a cross join unless the caller's
    own filters relate the relations.
    """

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, relation: str) -> str:
        return f"INNER JOIN {self._ctx.compiler.quote_identifier(relation)} ON 1=1"


class WhereClauseBuilder:
    """Builds the WHERE clause: policy conditions, then the filter group."""

    def __init__(self, ctx: CompilationContext, filter_builder: FilterBuilder) -> None:
        self._ctx = ctx
        self._filters = filter_builder

    def build(self, request: CanonicalRequest) -> str:
        conditions = self._ctx.policy.conditions_for(request.relations)
        filters = self._filters.build_all(request.filters)
        if filters:
            conditions.append(filters)
        return "WHERE " + " AND ".join(conditions)


class GroupByClauseBuilder:
    """Builds ``GROUP BY`` from bare (relation-stripped) column names."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, columns: list[str]) -> str:
        quoted = [self._ctx.compiler.quote_column(c, keep_relation=False) for c in columns]
        return f"GROUP BY {', '.join(quoted)}"


class OrderByClauseBuilder:
    """Builds ``ORDER BY`` from bare column names with their directions."""

    def __init__(self, ctx: CompilationContext) -> None:
        self._ctx = ctx

    def build(self, keys: list[SortKey]) -> str:
        parts = [
            f"{self._ctx.compiler.quote_column(k.column, keep_relation=False)} {k.direction.value}"
            for k in keys
        ]
        return f"ORDER BY {', '.join(parts)}"
