"""Compiler abstraction: the SQLCompiler ABC.

The synthesizer's clause builders render every dialect-sensitive fragment
(identifier quoting, literals, row caps) through this interface, so the
clause logic stays dialect-neutral.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime

from guardql.schema.column_reference import ColumnReference


class SQLCompiler(ABC):
    """Abstract base for dialect-specific SQL rendering."""

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Short dialect identifier, e.g. ``'mssql'``."""

    @abstractmethod
    def quote_identifier(self, name: str) -> str:
        """Return a properly-quoted SQL identifier.

        Args:
            name: Raw identifier (no qualifier).

        Returns:
            Dialect-quoted identifier.
        """

    @abstractmethod
    def top_clause(self, limit: int) -> str:
        """Row-cap fragment placed after ``SELECT [DISTINCT]``."""

    def quote_column(self, ref: str, keep_relation: bool = True) -> str:
        """Quote a ``relation.column`` or bare column reference part by part.

        Args:
            ref: Column reference string.
            keep_relation: When false, the relation prefix is dropped.
        """
        parsed = ColumnReference.parse(ref)
        if parsed.relation and keep_relation:
            relation = self.quote_identifier(parsed.relation)
            return f"{relation}.{self.quote_identifier(parsed.column)}"
        return self.quote_identifier(parsed.column)

    def render_string(self, value: str) -> str:
        """Single-quoted string literal with embedded quotes doubled."""
        escaped = value.replace("'", "''")
        return f"'{escaped}'"

    def render_boolean(self, value: bool) -> str:
        return "1" if value else "0"

    def render_temporal(self, value: date | datetime) -> str:
        if isinstance(value, datetime):
            return self.render_string(value.isoformat(sep=" "))
        return self.render_string(value.isoformat())
