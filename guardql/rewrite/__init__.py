"""Safety & Policy Rewriter: text passes over candidate SQL."""

from guardql.rewrite.rewriter import DEFAULT_PASSES, RewritePass, SafetyRewriter, rewrite

__all__ = ["DEFAULT_PASSES", "RewritePass", "SafetyRewriter", "rewrite"]
