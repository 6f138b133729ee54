"""Fail-closed static checks run before any statement reaches the database.

The guard is independent of the WHERE-clause policy passes: it rejects
requests that name excluded relations and statements that are anything but
a single SELECT.  It never rewrites; a violation is always an error.
"""
from __future__ import annotations

import sqlparse
from sqlparse import tokens as T
from sqlparse.sql import Statement

from guardql.errors import ExcludedRelationError, NonSelectStatementError
from guardql.policy.config import PolicyConfig
from guardql.rewrite.sqltext import MaskedSQL
from guardql.schema.request import CanonicalRequest

# SELECT ... INTO creates a table on SQL Server.
_WRITING_KEYWORDS = frozenset({"INTO"})


class StatementGuard:
    """Rejects excluded relations and non-SELECT statements."""

    def check_request(self, request: CanonicalRequest, policy: PolicyConfig) -> None:
        """Raise if ``request`` names an excluded relation.

        Raises:
            ExcludedRelationError: On the first excluded relation found in
                ``relations`` or ``projections``.
        """
        for relation in [*request.relations, *request.projections]:
            if policy.is_excluded(relation):
                raise ExcludedRelationError(relation, list(policy.excluded_relation_patterns))

    def check_statement(self, sql: str, policy: PolicyConfig) -> None:
        """Raise unless ``sql`` is one read-only SELECT over permitted relations.

        Raises:
            NonSelectStatementError: If the statement does not start with
                ``SELECT``, more than one statement is present, or the
                SELECT writes its rows somewhere with ``INTO``.
            ExcludedRelationError: If a FROM / JOIN target, at any depth,
                matches an excluded pattern.
        """
        statements = [s for s in sqlparse.parse(sql) if _has_content(s)]
        if not statements:
            raise NonSelectStatementError(
                "Only SELECT statements are allowed; got an empty statement.",
                leading_keyword=None,
            )
        statement = statements[0]
        keyword = _leading_keyword(statement)
        if keyword != "SELECT" or statement.get_type() not in ("SELECT", "UNKNOWN"):
            raise NonSelectStatementError(
                f"Only SELECT statements are allowed; got {keyword}.",
                leading_keyword=keyword,
            )
        if len(statements) > 1:
            raise NonSelectStatementError(
                "Only a single statement is allowed.", leading_keyword=keyword
            )
        for token in statement.flatten():
            if token.ttype in T.Keyword and token.normalized.upper() in _WRITING_KEYWORDS:
                raise NonSelectStatementError(
                    f"SELECT ... {token.normalized.upper()} is not allowed.",
                    leading_keyword=keyword,
                )
        for ref in MaskedSQL(sql).targets():
            if policy.is_excluded(ref.relation):
                raise ExcludedRelationError(ref.relation, list(policy.excluded_relation_patterns))


def _has_content(statement: Statement) -> bool:
    return any(
        not token.is_whitespace and token.ttype not in T.Comment and token.value != ";"
        for token in statement.flatten()
    )


def _leading_keyword(statement: Statement) -> str | None:
    for token in statement.flatten():
        if token.is_whitespace or token.ttype in T.Comment or token.match(T.Punctuation, "("):
            continue
        return token.normalized.upper()
    return None
