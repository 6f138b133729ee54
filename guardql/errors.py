"""Custom exception hierarchy for GuardQL.

All public errors inherit from GuardQLError so callers can catch the base
class for any GuardQL-specific failure.

``InvalidRequestError`` and ``PolicyViolationError`` are terminal: the engine
never synthesizes or falls back after raising them.  ``ExecutionError`` and
``ProviderError`` are recovered inside the engine and only surface when a
collaborator is used directly.
"""
from __future__ import annotations

from typing import Any


class GuardQLError(Exception):
    """Base exception for all GuardQL errors."""


class InvalidRequestError(GuardQLError):
    """Raised when a CanonicalRequest is malformed.

    Args:
        message: Human-readable description.
        code: Machine-readable error code (e.g. ``EMPTY_RELATIONS``).
        details: Extra context for the caller.
    """

    def __init__(
        self,
        message: str,
        code: str = "INVALID_REQUEST",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response for the presentation layer."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class PolicyViolationError(GuardQLError):
    """Raised when a request or statement breaks a policy rule.

    Covers excluded relations, non-SELECT statements and stacked statements.
    The engine fails closed on these; they are never rewritten away.
    """

    def __init__(
        self,
        message: str,
        code: str = "POLICY_VIOLATION",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details: dict[str, Any] = details or {}

    def to_error_response(self) -> dict[str, Any]:
        """Returns a structured error response for the presentation layer."""
        return {
            "error": self.code,
            "message": str(self),
            "details": self.details,
        }


class ExcludedRelationError(PolicyViolationError):
    """Raised when a relation matches an excluded-relation pattern."""

    def __init__(self, relation: str, patterns: list[str]) -> None:
        super().__init__(
            f"Relation '{relation}' is excluded by policy.",
            code="EXCLUDED_RELATION",
            details={"relation": relation, "patterns": patterns},
        )


class NonSelectStatementError(PolicyViolationError):
    """Raised when a candidate statement is not a single SELECT."""

    def __init__(self, message: str, leading_keyword: str | None = None) -> None:
        super().__init__(
            message,
            code="NON_SELECT_STATEMENT",
            details={"leading_keyword": leading_keyword},
        )


class ExecutionError(GuardQLError):
    """Raised by a SchemaCatalog when the database rejects a statement.

    Args:
        message: The database-reported error text.  The validation loop
            classifies failures by this text only.
        sql: The statement that was submitted.
    """

    def __init__(self, message: str, sql: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.sql = sql


class ProbeTimeoutError(ExecutionError):
    """Raised when a probe does not finish within its timeout."""


class ProviderError(GuardQLError):
    """Raised when an external model call fails (network, auth, quota).

    Args:
        message: Human-readable description.
        provider: Provider kind value that failed (e.g. ``'groq'``).
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider


class UnrepairableQueryError(GuardQLError):
    """Raised when no safe query can be produced, not even the fallback."""


class ConfigurationError(GuardQLError):
    """Raised for an unusable engine setup (e.g. an unregistered dialect)."""
