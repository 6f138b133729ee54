"""The query engine: one entry point from request to safe SQL.

Pipeline
--------
1. Coerce the input to a :class:`~guardql.schema.request.CanonicalRequest`
   and validate it (``InvalidRequestError`` is terminal).
2. Reject excluded relations up front (``PolicyViolationError`` is terminal).
3. Produce a candidate: the Synthesizer for structured requests, the AI
   Provider Chain for free text.
4. Rewrite the candidate with the Safety & Policy Rewriter.
5. Run the Validation Loop and report the outcome.

The policy is read once from the :class:`~guardql.policy.config.PolicyStore`
at the start of each request and threaded through every stage.
"""
from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from guardql.catalog.base import SchemaCatalog
from guardql.compile.base import SQLCompiler
from guardql.compile.builder import QueryBuilder
from guardql.compile.registry import CompilerFactory
from guardql.errors import ExecutionError
from guardql.policy.config import PolicyConfig, PolicyStore
from guardql.policy.guard import StatementGuard
from guardql.providers.chain import ProviderChain
from guardql.providers.models import AIModel, available_models
from guardql.rewrite.rewriter import SafetyRewriter
from guardql.schema.catalog import CatalogSnapshot
from guardql.schema.request import CanonicalRequest
from guardql.settings import Settings
from guardql.validate.loop import ValidationLoop, ValidationStatus
from guardql.validate.request_validator import RequestValidator, parse_request

logger = logging.getLogger(__name__)

SYNTHESIZER_SOURCE = "synthesizer"


class BuildResult(BaseModel):
    """What :meth:`QueryEngine.build_query` returns.

    Attributes:
        sql: The safe statement.
        warnings: Repairs applied, provider failures, and the fallback
            notice when one was used.
        used_fallback: True when ``sql`` is the safe fallback query.
        status: Validation status of ``sql``.
        source: ``synthesizer``, a model id, or ``local-template:<name>``.
    """

    model_config = ConfigDict(
        extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    sql: str
    warnings: list[str] = Field(default_factory=list)
    used_fallback: bool = False
    status: ValidationStatus = ValidationStatus.VALID
    source: str = SYNTHESIZER_SOURCE


class QueryEngine:
    """Builds validated, policy-compliant SQL from requests.

    Args:
        catalog: Schema catalog for descriptions and probes.
        policy_store: Holder of the current policy.  A bare
            :class:`PolicyConfig` is wrapped in a new store.
        settings: Runtime settings; read from the environment if omitted.
        provider_chain: AI provider chain; built from ``settings`` if
            omitted.
        compiler: Dialect compiler; created from ``settings.dialect`` if
            omitted.
    """

    def __init__(
        self,
        catalog: SchemaCatalog,
        policy_store: PolicyStore | PolicyConfig | None = None,
        settings: Settings | None = None,
        provider_chain: ProviderChain | None = None,
        compiler: SQLCompiler | None = None,
    ) -> None:
        if isinstance(policy_store, PolicyConfig):
            policy_store = PolicyStore(policy_store)
        self._catalog = catalog
        self._policy_store = policy_store or PolicyStore()
        self._settings = settings or Settings.from_env()
        self._compiler = compiler or CompilerFactory.create(self._settings.dialect)
        self._provider_chain = provider_chain or ProviderChain(self._settings)
        self._validator = RequestValidator()
        self._guard = StatementGuard()
        self._builder = QueryBuilder(self._compiler)
        self._rewriter = SafetyRewriter()
        self._loop = ValidationLoop(
            catalog,
            self._compiler,
            rewriter=self._rewriter,
            guard=self._guard,
            probe_timeout=self._settings.probe_timeout,
        )

    @property
    def policy_store(self) -> PolicyStore:
        return self._policy_store

    def available_models(self) -> list[AIModel]:
        """Models usable with this engine's settings."""
        return available_models(self._settings)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_query(self, request: CanonicalRequest | dict[str, Any] | str) -> BuildResult:
        """Turn ``request`` into safe SQL.

        Args:
            request: A CanonicalRequest, its mapping form, or free text.

        Returns:
            The statement with its warnings and validation status.

        Raises:
            InvalidRequestError: If the request is malformed.
            PolicyViolationError: If the request or candidate reads an
                excluded relation, or the candidate is not a single SELECT.
            UnrepairableQueryError: If no safe statement can be produced.
        """
        policy = self._policy_store.current
        canonical = self._coerce(request)
        self._validator.validate(canonical)
        self._guard.check_request(canonical, policy)

        warnings: list[str] = []
        snapshot: CatalogSnapshot | None = None
        if canonical.is_ai_request:
            snapshot = self._describe()
            candidate = self._provider_chain.generate(
                canonical.free_text,
                snapshot or CatalogSnapshot(),
                policy,
                canonical.model_id,
            )
            sql, source = candidate.sql, candidate.source
            if candidate.warning:
                warnings.append(candidate.warning)
        else:
            sql, source = self._builder.synthesize(canonical, policy), SYNTHESIZER_SOURCE

        sql = self._rewriter.rewrite(sql, policy)
        outcome = self._loop.validate(sql, policy, canonical, snapshot)
        warnings.extend(outcome.warnings)
        logger.info(
            "Built query from %s: status=%s probes=%d", source, outcome.status.value, outcome.probes
        )
        return BuildResult(
            sql=outcome.sql,
            warnings=warnings,
            used_fallback=outcome.status is ValidationStatus.FALLBACK,
            status=outcome.status,
            source=source,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce(request: CanonicalRequest | dict[str, Any] | str) -> CanonicalRequest:
        if isinstance(request, CanonicalRequest):
            return request
        if isinstance(request, str):
            return CanonicalRequest.from_text(request)
        return parse_request(request)

    def _describe(self) -> CatalogSnapshot | None:
        try:
            return self._catalog.describe()
        except ExecutionError:
            logger.warning("Catalog description failed; prompting without a catalog")
            return None
