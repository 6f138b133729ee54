"""Policy configuration and its hot-reloadable holder.

``PolicyConfig`` describes the conditions every statement must carry and the
relations no statement may read.  It is an immutable value: an administrative
update replaces it wholesale through :class:`PolicyStore`, and readers pick up
the new value on their next ``current`` read.  No lock is taken; a request
that straddles a replacement may see the old value in one stage and the new
value in the next.
"""
from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel, to_snake

_MODEL_CONFIG = ConfigDict(
    extra="forbid",
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


class BusinessRule(BaseModel):
    """A named calculation or constraint described to the language model.

    Attributes:
        name: Rule name (e.g. ``'Profit Margin'``).
        description: Plain-language description.
        formula: Reference formula, written with guarded division.
        category: Free-form grouping (``'calculation'``, ``'filter'`` ...).
        is_active: Inactive rules are not shown to the model.
    """

    model_config = _MODEL_CONFIG

    name: str
    description: str = ""
    formula: str = ""
    category: str = "calculation"
    is_active: bool = True


DEFAULT_BUSINESS_RULES: tuple[BusinessRule, ...] = (
    BusinessRule(
        name="Profit Margin",
        description="Profit as a percentage of revenue.",
        formula="ISNULL((SalesAmount - CostAmount) * 100.0 / NULLIF(SalesAmount, 0), 0)",
    ),
    BusinessRule(
        name="Average Order Value",
        description="Revenue divided by the number of distinct orders.",
        formula="ISNULL(SUM(SalesAmount) / NULLIF(COUNT(DISTINCT SalesNo), 0), 0)",
    ),
)


class PolicyConfig(BaseModel):
    """Process-wide tenancy and business policy.

    Attributes:
        mandatory_conditions: Conditions every statement must carry in its
            WHERE clause, whatever relations it reads.
        excluded_relation_patterns: Case-insensitive substrings; a relation
            whose name contains one may never be a FROM/JOIN target.
        tenant_column: Column of the generic tenant condition, used when no
            other condition applies.
        status_value: Value required of relation status columns.
        status_relations: Relations that carry a ``<Relation>TypeStatus``
            column; reading one makes its status condition mandatory.
        status_column_suffix: Suffix of the status column name.
        default_top: Row cap inserted ahead of an unbounded ORDER BY.
        business_rules: Rules described to the language model.
    """

    model_config = _MODEL_CONFIG

    mandatory_conditions: list[str] = Field(
        default_factory=lambda: ["CompanyTypeStatus IS NOT NULL"]
    )
    excluded_relation_patterns: list[str] = Field(default_factory=lambda: ["_copy"])
    tenant_column: str = "CompanyPincode"
    status_value: int = 200
    status_relations: list[str] = Field(
        default_factory=lambda: ["Sales", "Stock", "SalesReturn"]
    )
    status_column_suffix: str = "TypeStatus"
    default_top: int = Field(default=100, gt=0)
    business_rules: list[BusinessRule] = Field(
        default_factory=lambda: list(DEFAULT_BUSINESS_RULES)
    )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_excluded(self, relation: str) -> bool:
        """True when ``relation`` matches an excluded pattern."""
        lowered = relation.lower()
        return any(p.lower() in lowered for p in self.excluded_relation_patterns if p)

    def status_condition_for(self, relation: str) -> str | None:
        """The status condition for a recognized relation, else ``None``."""
        for known in self.status_relations:
            if known.lower() == relation.lower():
                return f"{known}{self.status_column_suffix} = {self.status_value}"
        return None

    def conditions_for(self, relations: Iterable[str]) -> list[str]:
        """All conditions a statement reading ``relations`` must carry.

        Mandatory conditions come first, then one status condition per
        recognized relation.  Duplicates are dropped case-insensitively.
        When nothing applies, the generic tenant condition is returned so a
        statement is never unconstrained.
        """
        conditions: list[str] = []
        seen: set[str] = set()

        def add(condition: str) -> None:
            key = " ".join(condition.split()).lower()
            if key and key not in seen:
                seen.add(key)
                conditions.append(condition.strip())

        for condition in self.mandatory_conditions:
            add(condition)
        for relation in relations:
            status = self.status_condition_for(relation)
            if status:
                add(status)
        if not conditions:
            add(f"{self.tenant_column} IS NOT NULL")
        return conditions

    @property
    def active_rules(self) -> list[BusinessRule]:
        return [r for r in self.business_rules if r.is_active]


class PolicyStore:
    """Holds the current :class:`PolicyConfig`.

    Replacement is a single reference assignment, so readers never observe a
    partially updated config.

    Args:
        initial: Starting config; defaults to ``PolicyConfig()``.
    """

    def __init__(self, initial: PolicyConfig | None = None) -> None:
        self._config = initial or PolicyConfig()

    @property
    def current(self) -> PolicyConfig:
        """The config in force right now."""
        return self._config

    def replace(self, config: PolicyConfig) -> None:
        """Swap in ``config`` wholesale."""
        self._config = config

    def update(self, overrides: Mapping[str, Any]) -> PolicyConfig:
        """Validate ``overrides`` on top of the current config and swap it in.

        Keys may use either snake_case or camelCase spellings.

        Returns:
            The new config.

        Raises:
            pydantic.ValidationError: If the merged config is invalid.
        """
        merged = self._config.model_dump()
        for key, value in overrides.items():
            merged[to_snake(key)] = value
        config = PolicyConfig.model_validate(merged)
        self.replace(config)
        return config

    @classmethod
    def from_json(cls, path: str | Path) -> PolicyStore:
        """Load a store from a JSON file holding a PolicyConfig object."""
        data = json.loads(Path(path).read_text())
        return cls(PolicyConfig.model_validate(data))
