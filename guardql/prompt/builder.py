"""Prompt builder: constructs system and user prompts for SQL generation.

The model receives three inputs:
1. **Catalog Snapshot** - the relations and columns it may read.
2. **Business Rules** - the active named calculations from the policy.
3. **Mandatory Constraints** - conditions every query must carry and the
   relation patterns it must never touch.

``PromptBuilder`` assembles these into one system prompt shared by every
provider, and a user prompt carrying the question.  The builder does not
call a model; :mod:`guardql.providers` does.
"""
from __future__ import annotations

import json
from dataclasses import dataclass

from guardql.policy.config import PolicyConfig
from guardql.schema.catalog import CatalogSnapshot

_SYSTEM_PROMPT_TEMPLATE = """\
You are an expert Microsoft SQL Server query generator.
Generate one valid T-SQL SELECT statement for the user's request.

## Catalog (relations and columns you may read)
{catalog}

## Business rules
{business_rules}

## Mandatory constraints
- Generate only SELECT statements.  Never modify data.
- ALWAYS include a WHERE clause with: {mandatory_conditions}
{status_conditions}
- NEVER read relations whose name contains: {excluded_patterns}
- Tenant column: {tenant_column}

## SQL Server syntax
- Use TOP N instead of LIMIT N, and only when the user asks for a number of rows.
- Use [square brackets] for names with spaces or reserved words.
- Use ISNULL() or COALESCE() for NULL handling.
- Every column that is not aggregated must appear in GROUP BY.
- Do not invent relations or columns.

## Mathematical safety
- ALWAYS guard division: value1 / NULLIF(value2, 0).
- Multiply by 100.0, not 100, so percentages keep their decimals.
- Example: {division_example}

Return only the T-SQL statement, without explanations or markdown.
"""

_USER_PROMPT_TEMPLATE = "Generate SQL Server T-SQL query for: {question}"

_DIVISION_EXAMPLE = (
    "ISNULL((SalesFinalSaleRate - SalesPurchaseCost) * 100.0 "
    "/ NULLIF(SalesFinalSaleRate, 0), 0) AS ProfitMargin"
)


@dataclass
class PromptComponents:
    """The prompt parts ready to pass to a chat model.

    Attributes:
        system_prompt: Catalog, rules and constraints.
        user_prompt: The question, framed as a T-SQL request.
        catalog_json: The catalog section as JSON (for logging).
    """

    system_prompt: str
    user_prompt: str
    catalog_json: str


class PromptBuilder:
    """Builds the shared system prompt and the per-question user prompt."""

    def build(
        self, free_text: str, catalog: CatalogSnapshot, policy: PolicyConfig
    ) -> PromptComponents:
        """Build prompts for ``free_text`` against ``catalog`` under ``policy``."""
        catalog_json = self._build_catalog_summary(catalog)
        statuses = [
            f"- When reading {relation}: {policy.status_condition_for(relation)}"
            for relation in policy.status_relations
        ]
        system_prompt = _SYSTEM_PROMPT_TEMPLATE.format(
            catalog=catalog_json,
            business_rules=self._build_rules_summary(policy),
            mandatory_conditions=" AND ".join(policy.conditions_for([])),
            status_conditions="\n".join(statuses),
            excluded_patterns=", ".join(policy.excluded_relation_patterns) or "(none)",
            tenant_column=policy.tenant_column,
            division_example=_DIVISION_EXAMPLE,
        )
        return PromptComponents(
            system_prompt=system_prompt,
            user_prompt=_USER_PROMPT_TEMPLATE.format(question=free_text.strip()),
            catalog_json=catalog_json,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_catalog_summary(catalog: CatalogSnapshot) -> str:
        summary = {
            "relations": [
                {
                    "name": relation.name,
                    "columns": [
                        {"name": c.name, **({"type": c.type} if c.type else {})}
                        for c in relation.columns
                    ],
                }
                for relation in catalog.relations
            ]
        }
        return json.dumps(summary, indent=2)

    @staticmethod
    def _build_rules_summary(policy: PolicyConfig) -> str:
        rules = policy.active_rules
        if not rules:
            return "(none)"
        return "\n".join(
            f"{i}. {rule.name}: {rule.description}\n   Formula: {rule.formula}"
            for i, rule in enumerate(rules, start=1)
        )
