"""Pydantic models for the Canonical Request Model.

A CanonicalRequest is the structured form of a query intent, produced by the
query-builder forms of the presentation layer.  A request that names no
relation but carries free text is an *AI request* and is routed to the
provider chain instead of the synthesizer.

Field names are snake_case; the camelCase spellings used by the web client
(``groupBy``, ``freeText`` ...) are accepted as aliases.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from guardql.schema.expressions import (
    AggregateFunction,
    FilterOperator,
    LogicalJoin,
    SortDirection,
)

Scalar = Union[bool, int, float, datetime, date, str]

_MODEL_CONFIG = ConfigDict(
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


class Aggregation(BaseModel):
    """An aggregate over one column.

    Attributes:
        column: Column reference; may be empty only for ``COUNT``, which then
            renders as ``COUNT(*)``.
        function: The aggregate function.
        alias: Optional output column name.
    """

    model_config = _MODEL_CONFIG

    column: str = ""
    function: AggregateFunction
    alias: str | None = None


class FilterPredicate(BaseModel):
    """A single filter condition.

    Attributes:
        column: Column reference.
        operator: Comparison operator.
        value: Scalar operand, or a list for ``IN`` / ``NOT IN``.  Unused by
            the null-check operators.
        value2: Upper bound for ``BETWEEN``.
        join: How this filter combines with the filters before it.
    """

    model_config = _MODEL_CONFIG

    column: str
    operator: FilterOperator
    value: Union[Scalar, list[Scalar], None] = None
    value2: Union[Scalar, None] = None
    join: LogicalJoin = LogicalJoin.AND


class SortKey(BaseModel):
    model_config = _MODEL_CONFIG

    column: str
    direction: SortDirection = SortDirection.ASC


class CanonicalRequest(BaseModel):
    """The structured representation of a query intent.

    Attributes:
        relations: Relations (tables or views) to read; the first is the
            FROM target.
        projections: Projected columns keyed by relation name.
        aggregations: Aggregates rendered ahead of projected columns.
        group_by: GROUP BY column references.
        filters: Filter predicates, combined left to right.
        sort: ORDER BY keys.
        limit: Row cap rendered as ``TOP n`` when positive.
        distinct: Whether to emit ``SELECT DISTINCT``.
        free_text: Natural-language question for the AI path.
        model_id: Model to use for the AI path; the engine default applies
            when omitted.
    """

    model_config = _MODEL_CONFIG

    relations: list[str] = Field(default_factory=list)
    projections: dict[str, list[str]] = Field(default_factory=dict)
    aggregations: list[Aggregation] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list)
    filters: list[FilterPredicate] = Field(default_factory=list)
    sort: list[SortKey] = Field(default_factory=list)
    limit: int | None = Field(default=None, ge=0)
    distinct: bool = False
    free_text: str = ""
    model_id: str | None = None

    @classmethod
    def from_text(cls, text: str, model_id: str | None = None) -> CanonicalRequest:
        """Build an AI request carrying only ``text``."""
        return cls(free_text=text, model_id=model_id)

    @property
    def is_ai_request(self) -> bool:
        """True when no relation is named but free text is present."""
        return not self.relations and bool(self.free_text.strip())

    @property
    def has_structured_intent(self) -> bool:
        """True when any structured selection is present."""
        return bool(
            self.projections
            or self.aggregations
            or self.group_by
            or self.filters
            or self.sort
        )

    @property
    def projected_columns(self) -> list[tuple[str, str]]:
        """``(relation, column)`` pairs in declaration order."""
        return [
            (relation, column)
            for relation, columns in self.projections.items()
            for column in columns
        ]
