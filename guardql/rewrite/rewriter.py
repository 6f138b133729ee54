"""The Safety & Policy Rewriter: an ordered chain of text passes.

``SafetyRewriter`` runs its passes in order and repeats the whole chain
until the text stops changing (at most ``max_rounds`` times).  Because every
pass is idempotent on its own output, the fixed point makes the chain as a
whole idempotent: ``rewrite(rewrite(s)) == rewrite(s)``.

Usage::

    from guardql.rewrite.rewriter import SafetyRewriter

    sql = SafetyRewriter().rewrite("select a/b from Sales", policy)
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from guardql.policy.config import PolicyConfig
from guardql.rewrite.passes import (
    complete_group_by,
    enforce_policy,
    guard_division,
    normalize_syntax,
    normalize_top,
)

logger = logging.getLogger(__name__)

PassFn = Callable[[str, PolicyConfig], str]


@dataclass(frozen=True)
class RewritePass:
    """A named rewrite pass."""

    name: str
    apply: PassFn


DEFAULT_PASSES: tuple[RewritePass, ...] = (
    RewritePass("syntax_normalization", normalize_syntax),
    RewritePass("mathematical_safety", guard_division),
    RewritePass("policy_enforcement", enforce_policy),
    RewritePass("group_by_completeness", complete_group_by),
    RewritePass("top_normalization", normalize_top),
)


class SafetyRewriter:
    """Applies the rewrite passes to candidate SQL.

    Args:
        passes: Ordered passes; defaults to :data:`DEFAULT_PASSES`.
        max_rounds: Upper bound on chain repetitions while seeking a fixed
            point.
    """

    def __init__(
        self,
        passes: Sequence[RewritePass] = DEFAULT_PASSES,
        max_rounds: int = 3,
    ) -> None:
        self._passes = tuple(passes)
        self._max_rounds = max_rounds

    @property
    def pass_names(self) -> list[str]:
        return [p.name for p in self._passes]

    def rewrite(self, sql: str, policy: PolicyConfig) -> str:
        """Rewrite ``sql`` so it satisfies ``policy``.

        Never raises: a pass that fails is logged and its input carried
        forward to the next pass.
        """
        current = sql
        for _ in range(self._max_rounds):
            result = self._run_chain(current, policy)
            if result == current:
                break
            current = result
        if current != sql:
            logger.debug("Rewrote SQL:\n%s\n->\n%s", sql, current)
        return current

    def _run_chain(self, sql: str, policy: PolicyConfig) -> str:
        for rewrite_pass in self._passes:
            try:
                sql = rewrite_pass.apply(sql, policy)
            except Exception:
                logger.exception(
                    "Rewrite pass %r failed; carrying its input forward", rewrite_pass.name
                )
        return sql


def rewrite(sql: str, policy: PolicyConfig) -> str:
    """Rewrite ``sql`` with the default pass chain."""
    return SafetyRewriter().rewrite(sql, policy)
