"""GuardQL: query synthesis and validation for SQL Server.

Turns a structured request or a free-text question into a single, safe,
policy-compliant T-SQL SELECT statement.

Public API
----------
``build_query``
    Synthesize or generate, rewrite, and validate a statement against a
    schema catalog.

``get_prompt_components``
    Build the system and user prompts sent to language models.

``QueryEngine``
    The reusable pipeline behind ``build_query``.

Extensibility
-------------
New dialect compilers can be registered via::

    from guardql.compile.registry import CompilerFactory

    @CompilerFactory.register("postgres")
    class PostgresCompiler(SQLCompiler):
        ...

and selected with ``Settings(dialect="postgres")``.
"""

from __future__ import annotations

import logging
from typing import Any

from guardql.catalog.base import SchemaCatalog
from guardql.catalog.sqlalchemy_catalog import SQLAlchemyCatalog
from guardql.compile import CompilerFactory, QueryBuilder, SQLCompiler, TSQLCompiler
from guardql.engine import BuildResult, QueryEngine
from guardql.errors import (
    ConfigurationError,
    ExcludedRelationError,
    ExecutionError,
    GuardQLError,
    InvalidRequestError,
    NonSelectStatementError,
    PolicyViolationError,
    ProbeTimeoutError,
    ProviderError,
    UnrepairableQueryError,
)
from guardql.policy import BusinessRule, PolicyConfig, PolicyStore, StatementGuard
from guardql.prompt import PromptBuilder, PromptComponents
from guardql.providers import (
    AIModel,
    AIProvider,
    LocalTemplateGenerator,
    ProviderChain,
    ProviderKind,
    available_models,
)
from guardql.rewrite import SafetyRewriter, rewrite
from guardql.schema import (
    Aggregation,
    CanonicalRequest,
    CatalogSnapshot,
    ColumnInfo,
    ExecutionResult,
    FilterPredicate,
    RelationInfo,
    SortKey,
)
from guardql.settings import Settings
from guardql.validate import (
    FuzzyIdentifierRepair,
    ValidationLoop,
    ValidationOutcome,
    ValidationStatus,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Core pipeline
    "build_query",
    "get_prompt_components",
    "QueryEngine",
    "BuildResult",
    # Request and catalog types
    "CanonicalRequest",
    "Aggregation",
    "FilterPredicate",
    "SortKey",
    "CatalogSnapshot",
    "RelationInfo",
    "ColumnInfo",
    "ExecutionResult",
    "SchemaCatalog",
    "SQLAlchemyCatalog",
    # Policy
    "PolicyConfig",
    "PolicyStore",
    "BusinessRule",
    "StatementGuard",
    # Compilation and rewriting
    "CompilerFactory",
    "QueryBuilder",
    "SQLCompiler",
    "TSQLCompiler",
    "SafetyRewriter",
    "rewrite",
    # Validation
    "ValidationLoop",
    "ValidationOutcome",
    "ValidationStatus",
    "FuzzyIdentifierRepair",
    # Providers and prompting
    "AIModel",
    "AIProvider",
    "ProviderKind",
    "ProviderChain",
    "LocalTemplateGenerator",
    "available_models",
    "PromptBuilder",
    "PromptComponents",
    # Settings
    "Settings",
    # Errors
    "GuardQLError",
    "InvalidRequestError",
    "PolicyViolationError",
    "ExcludedRelationError",
    "NonSelectStatementError",
    "ExecutionError",
    "ProbeTimeoutError",
    "ProviderError",
    "UnrepairableQueryError",
    "ConfigurationError",
]


def build_query(
    request: CanonicalRequest | dict[str, Any] | str,
    catalog: SchemaCatalog,
    policy: PolicyConfig | None = None,
    settings: Settings | None = None,
) -> BuildResult:
    """Build a safe statement for ``request``.

    This is the one-shot entry point; reuse a :class:`QueryEngine` when
    serving many requests::

        result = guardql.build_query(
            {"relations": ["Sales"], "aggregations": [{"column": "Amount", "function": "SUM"}]},
            catalog=SQLAlchemyCatalog(engine),
        )
        if result.used_fallback:
            show(result.warnings)

    Args:
        request: A CanonicalRequest, its mapping form, or a free-text question.
        catalog: Schema catalog used for descriptions and validation probes.
        policy: Policy to apply; defaults to ``PolicyConfig()``.
        settings: Runtime settings; defaults to ``Settings.from_env()``.

    Returns:
        ``BuildResult`` with ``sql``, ``warnings`` and ``used_fallback``.

    Raises:
        InvalidRequestError: If the request is malformed.
        PolicyViolationError: If the request touches an excluded relation or
            the candidate is not a single SELECT.
        UnrepairableQueryError: If not even a fallback can be built.
    """
    engine = QueryEngine(catalog, policy or PolicyConfig(), settings)
    return engine.build_query(request)


def get_prompt_components(
    question: str,
    snapshot: CatalogSnapshot,
    policy: PolicyConfig | None = None,
) -> PromptComponents:
    """Build the system and user prompts for ``question``.

    Args:
        question: The user's natural-language question.
        snapshot: Catalog to describe in the system prompt.
        policy: Policy whose rules and conditions are described; defaults to
            ``PolicyConfig()``.
    """
    return PromptBuilder().build(question, snapshot, policy or PolicyConfig())
