"""Policy configuration, hot-reload store and statement guard."""

from guardql.policy.config import BusinessRule, PolicyConfig, PolicyStore
from guardql.policy.guard import StatementGuard

__all__ = ["BusinessRule", "PolicyConfig", "PolicyStore", "StatementGuard"]
