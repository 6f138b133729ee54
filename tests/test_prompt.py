"""Unit tests for PromptBuilder."""

from __future__ import annotations

import json

from guardql import get_prompt_components
from guardql.policy.config import BusinessRule, PolicyConfig
from guardql.prompt.builder import PromptBuilder
from guardql.schema.catalog import CatalogSnapshot
from tests.fixtures import load_catalog_snapshot

SNAPSHOT = load_catalog_snapshot()


def _build(question: str = "top customers", policy: PolicyConfig | None = None):
    return PromptBuilder().build(question, SNAPSHOT, policy or PolicyConfig())


def test_user_prompt_frames_the_question() -> None:
    assert _build("  sales by month ").user_prompt == (
        "Generate SQL Server T-SQL query for: sales by month"
    )


def test_catalog_json_lists_relations_and_columns() -> None:
    catalog = json.loads(_build().catalog_json)
    assert [r["name"] for r in catalog["relations"]] == ["Sales", "Stock", "SalesReturn"]
    assert catalog["relations"][1]["columns"][2] == {"name": "ColorName", "type": "NVARCHAR(50)"}


def test_system_prompt_carries_the_catalog() -> None:
    components = _build()
    assert components.catalog_json in components.system_prompt


def test_system_prompt_carries_mandatory_conditions() -> None:
    prompt = _build().system_prompt
    assert "ALWAYS include a WHERE clause with: CompanyTypeStatus IS NOT NULL" in prompt
    assert "- When reading Sales: SalesTypeStatus = 200" in prompt
    assert "- When reading SalesReturn: SalesReturnTypeStatus = 200" in prompt
    assert "NEVER read relations whose name contains: _copy" in prompt
    assert "Tenant column: CompanyPincode" in prompt


def test_system_prompt_has_guarded_division_example() -> None:
    prompt = _build().system_prompt
    assert "NULLIF(SalesFinalSaleRate, 0)" in prompt
    assert "TOP N instead of LIMIT N" in prompt


def test_business_rules_are_numbered() -> None:
    policy = PolicyConfig(
        business_rules=[
            BusinessRule(name="Margin", description="Profit share.", formula="a / NULLIF(b, 0)"),
            BusinessRule(name="Hidden", is_active=False),
        ]
    )
    prompt = _build(policy=policy).system_prompt
    assert "1. Margin: Profit share.\n   Formula: a / NULLIF(b, 0)" in prompt
    assert "Hidden" not in prompt


def test_empty_rules_and_patterns() -> None:
    policy = PolicyConfig(business_rules=[], excluded_relation_patterns=[])
    prompt = _build(policy=policy).system_prompt
    assert "## Business rules\n(none)" in prompt
    assert "whose name contains: (none)" in prompt


def test_policy_changes_are_reflected() -> None:
    prompt = _build(policy=PolicyConfig(status_value=300)).system_prompt
    assert "- When reading Stock: StockTypeStatus = 300" in prompt


def test_get_prompt_components_defaults() -> None:
    components = get_prompt_components("stock by color", CatalogSnapshot())
    assert json.loads(components.catalog_json) == {"relations": []}
    assert components.user_prompt.endswith("stock by color")
