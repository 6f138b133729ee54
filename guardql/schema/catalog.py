"""Pydantic models for the schema catalog snapshot and execution results.

A CatalogSnapshot is read once per request from a
:class:`~guardql.catalog.base.SchemaCatalog`.  It lists the relations the
engine may read; relations matching excluded patterns are never included.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ColumnInfo(BaseModel):
    """Metadata for a single column.

    Attributes:
        name: Column name.
        type: SQL type string (e.g. ``'NVARCHAR'``, ``'DECIMAL(18, 2)'``).
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    type: str = ""


class RelationInfo(BaseModel):
    """Metadata for a single table or view.

    Attributes:
        name: Relation name.
        row_count_hint: Approximate row count, when the catalog knows it.
        columns: Ordered column metadata.
    """

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    name: str
    row_count_hint: int | None = None
    columns: list[ColumnInfo] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        """Returns all column names for this relation."""
        return [c.name for c in self.columns]


class CatalogSnapshot(BaseModel):
    """A read-only view of the relations available to the engine."""

    model_config = ConfigDict(extra="forbid")

    relations: list[RelationInfo] = Field(default_factory=list)

    def get_relation(self, name: str) -> RelationInfo | None:
        """Returns the relation with the given name, case-insensitively."""
        lowered = name.lower()
        for relation in self.relations:
            if relation.name.lower() == lowered:
                return relation
        return None

    def get_column_names(self, relation: str) -> list[str]:
        """Returns column names for ``relation``, or an empty list if unknown."""
        info = self.get_relation(relation)
        return info.column_names if info else []

    @property
    def relation_names(self) -> list[str]:
        return [r.name for r in self.relations]

    def to_prompt_lines(self) -> list[str]:
        """One ``Relation: col (type), ...`` line per relation."""
        lines = []
        for relation in self.relations:
            cols = ", ".join(
                f"{c.name} ({c.type})" if c.type else c.name for c in relation.columns
            )
            lines.append(f"{relation.name}: {cols}")
        return lines


class ExecutionResult(BaseModel):
    """The result of executing a statement through a SchemaCatalog.

    Attributes:
        columns: Result column names.
        rows: One mapping per row.
        total_count: Number of rows returned.
        execution_time_ms: Wall-clock time spent executing.
    """

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    columns: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0
    execution_time_ms: int = 0
