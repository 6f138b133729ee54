"""The Validation Loop: probe, repair, or fall back.

States and transitions::

    START ──► PROBING ──ok──► DONE (VALID | CORRECTED)
                 │  ▲
           error │  │ repaired
                 ▼  │
              REPAIRING ──unrepairable──► FALLING_BACK ──► DONE (FALLBACK)

Each state has one handler that returns the next state.  A repair class is
applied at most once per run, so a run issues at most ``N + 1`` probes for
``N`` distinct error classes, plus one for a fallback.  Timeouts and
unrecognised errors go straight to FALLING_BACK, which probes the fallback
before returning it.

Usage::

    from guardql.validate.loop import ValidationLoop

    loop = ValidationLoop(catalog, TSQLCompiler())
    outcome = loop.validate(sql, policy, request)
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict

from guardql.catalog.base import SchemaCatalog
from guardql.compile.base import SQLCompiler
from guardql.errors import ExecutionError, UnrepairableQueryError
from guardql.policy.config import PolicyConfig
from guardql.policy.guard import StatementGuard
from guardql.rewrite.rewriter import SafetyRewriter
from guardql.rewrite.sqltext import (
    FROM_RE,
    GROUP_BY_RE,
    HAVING_RE,
    LIMIT_RE,
    OPTION_RE,
    ORDER_BY_RE,
    WHERE_RE,
    MaskedSQL,
    rewrite_branches,
    splice,
)
from guardql.schema.catalog import CatalogSnapshot
from guardql.schema.request import CanonicalRequest
from guardql.validate.diagnosis import Diagnosis, ErrorClass, classify
from guardql.validate.fallback import SafeFallbackBuilder
from guardql.validate.fuzzy import FuzzyIdentifierRepair
from guardql.validate.repairs import (
    Repair,
    promote_order_by,
    repair_invalid_column,
    strip_table_aliases,
)

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    START = "start"
    PROBING = "probing"
    REPAIRING = "repairing"
    FALLING_BACK = "falling_back"
    DONE = "done"


class ValidationStatus(str, Enum):
    """How the returned statement relates to the candidate."""

    VALID = "valid"
    CORRECTED = "corrected"
    FALLBACK = "fallback"


class ValidationOutcome(BaseModel):
    """Result of one validation run.

    Attributes:
        status: VALID (accepted as given), CORRECTED (one or more repairs
            applied) or FALLBACK (replaced by the safe fallback query).
        sql: The statement to return to the caller.
        warnings: One entry per repair, plus the fallback reason if any.
        probes: Number of probes submitted to the catalog.
        repairs: Error classes repaired, in order.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status: ValidationStatus
    sql: str
    warnings: tuple[str, ...] = ()
    probes: int = 0
    repairs: tuple[ErrorClass, ...] = ()


# ---------------------------------------------------------------------------
# Probe form
# ---------------------------------------------------------------------------

_PROBE_WHERE_BEFORE = (GROUP_BY_RE, HAVING_RE, ORDER_BY_RE, OPTION_RE, LIMIT_RE)


def probe_form(sql: str) -> str:
    """Return ``sql`` with ``1=0`` forced into every branch's WHERE clause.

    The probe compiles and binds every name but reads no rows.  A branch
    without FROM is left as is.
    """
    return rewrite_branches(sql, _probe_branch)


def _probe_branch(sql: str) -> str:
    ms = MaskedSQL(sql)
    from_match = ms.find_top_level(FROM_RE)
    if from_match is None:
        return sql
    where = ms.clause(WHERE_RE)
    if where is None:
        at = ms.insertion_point(_PROBE_WHERE_BEFORE, start=from_match.end())
        return splice(sql, at, at, "WHERE 1=0")
    body = ms.body(where)
    clause = f"WHERE 1=0 AND ({body})" if body else "WHERE 1=0"
    return splice(sql, where.start, where.end, clause)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


@dataclass
class _Run:
    """Mutable state of one validation run."""

    original: str
    sql: str
    policy: PolicyConfig
    request: CanonicalRequest | None
    snapshot: CatalogSnapshot | None
    error: ExecutionError | None = None
    probes: int = 0
    repaired: list[ErrorClass] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    status: ValidationStatus = ValidationStatus.VALID


class ValidationLoop:
    """Probes candidate SQL against the catalog and repairs what it can.

    Args:
        catalog: Schema catalog used for probes and, lazily, for the
            snapshot that drives fuzzy repair and the fallback.
        compiler: Dialect compiler used by the fallback builder.
        rewriter: Re-applied after every repair.
        guard: Statement guard checked before the first probe and after
            every repair.
        fuzzy: Invalid-column repair.
        fallback: Safe fallback builder.
        probe_timeout: Seconds allowed per probe.
    """

    def __init__(
        self,
        catalog: SchemaCatalog,
        compiler: SQLCompiler,
        *,
        rewriter: SafetyRewriter | None = None,
        guard: StatementGuard | None = None,
        fuzzy: FuzzyIdentifierRepair | None = None,
        fallback: SafeFallbackBuilder | None = None,
        probe_timeout: float | None = 10.0,
    ) -> None:
        self._catalog = catalog
        self._rewriter = rewriter or SafetyRewriter()
        self._guard = guard or StatementGuard()
        self._fuzzy = fuzzy or FuzzyIdentifierRepair()
        self._fallback = fallback or SafeFallbackBuilder(compiler)
        self._probe_timeout = probe_timeout
        self._handlers: dict[LoopState, Callable[[_Run], LoopState]] = {
            LoopState.START: self._start,
            LoopState.PROBING: self._probe,
            LoopState.REPAIRING: self._repair,
            LoopState.FALLING_BACK: self._fall_back,
        }

    def validate(
        self,
        sql: str,
        policy: PolicyConfig,
        request: CanonicalRequest | None = None,
        snapshot: CatalogSnapshot | None = None,
    ) -> ValidationOutcome:
        """Run the state machine on an already rewritten candidate.

        Args:
            sql: Candidate statement.
            policy: Policy in force for this request.
            request: The originating request, used to prefer its relations
                during repair and fallback.
            snapshot: Catalog snapshot; described on first use if omitted.

        Raises:
            PolicyViolationError: If the candidate is not a single SELECT
                or reads an excluded relation.
            UnrepairableQueryError: If not even the fallback can be built.
        """
        run = _Run(original=sql, sql=sql, policy=policy, request=request, snapshot=snapshot)
        state = LoopState.START
        while state is not LoopState.DONE:
            state = self._handlers[state](run)
        return ValidationOutcome(
            status=run.status,
            sql=run.sql,
            warnings=tuple(run.warnings),
            probes=run.probes,
            repairs=tuple(run.repaired),
        )

    # ------------------------------------------------------------------
    # State handlers
    # ------------------------------------------------------------------

    def _start(self, run: _Run) -> LoopState:
        self._guard.check_statement(run.sql, run.policy)
        return LoopState.PROBING

    def _probe(self, run: _Run) -> LoopState:
        run.probes += 1
        try:
            self._catalog.execute(probe_form(run.sql), timeout=self._probe_timeout)
        except ExecutionError as exc:
            logger.debug("Probe %d failed: %s", run.probes, exc.message)
            run.error = exc
            return LoopState.REPAIRING
        run.status = ValidationStatus.CORRECTED if run.repaired else ValidationStatus.VALID
        return LoopState.DONE

    def _repair(self, run: _Run) -> LoopState:
        diagnosis = classify(run.error)
        if diagnosis.error_class in (ErrorClass.TIMEOUT, ErrorClass.UNRECOGNIZED):
            run.warnings.append(
                f"Validation failed ({diagnosis.error_class.value}): {diagnosis.message}"
            )
            return LoopState.FALLING_BACK
        if diagnosis.error_class in run.repaired:
            run.warnings.append(
                f"Repair for {diagnosis.error_class.value} did not resolve: {diagnosis.message}"
            )
            return LoopState.FALLING_BACK

        repair = self._apply_strategy(diagnosis, run)
        if repair is None:
            run.warnings.append(f"No repair for {diagnosis.error_class.value}: {diagnosis.message}")
            return LoopState.FALLING_BACK

        sql = self._rewriter.rewrite(repair.sql, run.policy)
        self._guard.check_statement(sql, run.policy)
        logger.warning("Applied %s repair: %s", diagnosis.error_class.value, repair.note)
        run.sql = sql
        run.repaired.append(diagnosis.error_class)
        run.warnings.append(repair.note)
        return LoopState.PROBING

    def _fall_back(self, run: _Run) -> LoopState:
        snapshot = self._snapshot(run)
        if snapshot is None:
            raise UnrepairableQueryError("The catalog could not be described for a fallback.")
        preferred = list(run.request.relations) if run.request else []
        preferred.extend(MaskedSQL(run.original).referenced_relations())
        sql = self._fallback.build(snapshot, run.policy, preferred)
        run.probes += 1
        try:
            self._catalog.execute(probe_form(sql), timeout=self._probe_timeout)
        except ExecutionError as exc:
            raise UnrepairableQueryError(
                f"The fallback query failed validation: {exc.message}"
            ) from exc
        run.sql = sql
        run.status = ValidationStatus.FALLBACK
        run.warnings.append("Returned a safe fallback query; results may not match the request.")
        logger.warning("Falling back after %d probe(s)", run.probes)
        return LoopState.DONE

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _apply_strategy(self, diagnosis: Diagnosis, run: _Run) -> Repair | None:
        if diagnosis.error_class is ErrorClass.ORDER_BY_NOT_GROUPED:
            return promote_order_by(run.sql)
        if diagnosis.error_class is ErrorClass.UNBOUND_IDENTIFIER:
            return strip_table_aliases(run.sql, diagnosis.identifier)
        snapshot = self._snapshot(run)
        if snapshot is None:
            return None
        return repair_invalid_column(
            run.sql,
            diagnosis.identifier,
            snapshot,
            run.policy,
            self._fuzzy,
            run.request.relations if run.request else (),
        )

    def _snapshot(self, run: _Run) -> CatalogSnapshot | None:
        if run.snapshot is None:
            try:
                run.snapshot = self._catalog.describe()
            except ExecutionError:
                logger.exception("Could not describe the catalog")
                return None
        return run.snapshot
