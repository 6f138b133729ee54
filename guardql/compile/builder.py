"""SQL Synthesizer: CanonicalRequest → T-SQL text.

``QueryBuilder`` is the top-level orchestrator.  It wires together the
clause-level sub-builders and assembles one SELECT statement per request.
All dialect-specific rendering is delegated to the injected
``SQLCompiler``.

Sub-builder hierarchy
---------------------
QueryBuilder
  ├── LiteralRenderer       (expression_builder.py)
  ├── FilterBuilder         (expression_builder.py)
  ├── SelectClauseBuilder   (clause_builders.py)
  ├── FromClauseBuilder     (clause_builders.py)
  ├── JoinClauseBuilder     (clause_builders.py)
  ├── WhereClauseBuilder    (clause_builders.py)
  ├── GroupByClauseBuilder  (clause_builders.py)
  └── OrderByClauseBuilder  (clause_builders.py)

Synthesis is pure: the same request and policy always yield the same text.
The statement carries no trailing terminator; the rewriter adds it.
"""

from __future__ import annotations

from guardql.compile.base import SQLCompiler
from guardql.compile.clause_builders import (
    FromClauseBuilder,
    GroupByClauseBuilder,
    JoinClauseBuilder,
    OrderByClauseBuilder,
    SelectClauseBuilder,
    WhereClauseBuilder,
)
from guardql.compile.context import CompilationContext
from guardql.compile.expression_builder import FilterBuilder, LiteralRenderer
from guardql.errors import InvalidRequestError
from guardql.policy.config import PolicyConfig
from guardql.schema.request import CanonicalRequest


class QueryBuilder:
    """Compiles a validated CanonicalRequest to a single SELECT statement.

    Args:
        compiler: Dialect-specific compiler instance.
    """

    def __init__(self, compiler: SQLCompiler) -> None:
        self._compiler = compiler

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def synthesize(self, request: CanonicalRequest, policy: PolicyConfig) -> str:
        """Compile ``request`` under ``policy``.

        Args:
            request: A validated structured request.
            policy: The policy in force; its conditions for the request's
                relations open the WHERE clause.

        Returns:
            SQL text, one clause per line.

        Raises:
            InvalidRequestError: If ``request`` names no relation.
        """
        if not request.relations:
            raise InvalidRequestError(
                "A structured request must name at least one relation.",
                code="EMPTY_RELATIONS",
            )
        sub_builders = self._make_sub_builders(CompilationContext(self._compiler, policy))

        first, *others = request.relations
        parts = [
            sub_builders["select"].build(request),
            sub_builders["from"].build(first),
        ]
        parts.extend(sub_builders["join"].build(relation) for relation in others)
        parts.append(sub_builders["where"].build(request))
        if request.group_by:
            parts.append(sub_builders["group_by"].build(request.group_by))
        if request.sort:
            parts.append(sub_builders["order_by"].build(request.sort))
        return "\n".join(parts)

    # ------------------------------------------------------------------
    # Sub-builder wiring
    # ------------------------------------------------------------------

    @staticmethod
    def _make_sub_builders(ctx: CompilationContext) -> dict:
        filter_builder = FilterBuilder(ctx, LiteralRenderer(ctx))
        return {
            "select": SelectClauseBuilder(ctx),
            "from": FromClauseBuilder(ctx),
            "join": JoinClauseBuilder(ctx),
            "where": WhereClauseBuilder(ctx, filter_builder),
            "group_by": GroupByClauseBuilder(ctx),
            "order_by": OrderByClauseBuilder(ctx),
        }
