"""The Schema Catalog Accessor boundary.

A SchemaCatalog wraps the storage collaborator.  The engine uses exactly two
capabilities: describe the readable relations, and execute a statement with
a timeout.  Any database-reported failure must surface as
:class:`~guardql.errors.ExecutionError`; a timeout as
:class:`~guardql.errors.ProbeTimeoutError`.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from guardql.schema.catalog import CatalogSnapshot, ExecutionResult


class SchemaCatalog(ABC):
    """Abstract read-only access to a database."""

    @abstractmethod
    def describe(self) -> CatalogSnapshot:
        """Return the relations the engine may read.

        Relations matching the policy's excluded patterns are omitted.
        """

    @abstractmethod
    def execute(self, sql: str, timeout: float | None = None) -> ExecutionResult:
        """Execute ``sql`` and return its rows.

        Args:
            sql: Statement to execute.
            timeout: Seconds to wait before giving up; ``None`` waits
                indefinitely.

        Raises:
            ExecutionError: If the database rejects the statement.
            ProbeTimeoutError: If ``timeout`` elapses first.
        """
