"""Compilation context value object.

Packages the ``(compiler, policy)`` pair every clause builder needs.  A new
context is made per synthesis so each run sees the policy current at its
start.
"""
from __future__ import annotations

from dataclasses import dataclass

from guardql.compile.base import SQLCompiler
from guardql.policy.config import PolicyConfig


@dataclass(frozen=True)
class CompilationContext:
    """Immutable context for a single synthesis run.

    Attributes:
        compiler: Dialect-specific SQL compiler instance.
        policy: The policy in force for this run.
    """

    compiler: SQLCompiler
    policy: PolicyConfig
