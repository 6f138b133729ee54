"""SQL Server (T-SQL) dialect compiler."""

from __future__ import annotations

from guardql.compile.base import SQLCompiler


class TSQLCompiler(SQLCompiler):
    """Renders T-SQL: ``[bracket]`` identifiers and ``TOP n`` row caps."""

    @property
    def dialect_name(self) -> str:
        return "mssql"

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace("]", "]]")
        return f"[{escaped}]"

    def top_clause(self, limit: int) -> str:
        return f"TOP {limit}"
