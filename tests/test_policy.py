"""Unit tests for PolicyConfig, PolicyStore and StatementGuard."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from guardql.errors import ExcludedRelationError, NonSelectStatementError, PolicyViolationError
from guardql.policy.config import BusinessRule, PolicyConfig, PolicyStore
from guardql.policy.guard import StatementGuard
from guardql.schema.request import CanonicalRequest

POLICY = PolicyConfig()
GUARD = StatementGuard()


# ---------------------------------------------------------------------------
# PolicyConfig
# ---------------------------------------------------------------------------


def test_conditions_for_status_relation() -> None:
    assert POLICY.conditions_for(["Sales"]) == [
        "CompanyTypeStatus IS NOT NULL",
        "SalesTypeStatus = 200",
    ]


def test_conditions_for_is_case_insensitive_and_deduplicated() -> None:
    assert POLICY.conditions_for(["sales", "SALES", "Stock"]) == [
        "CompanyTypeStatus IS NOT NULL",
        "SalesTypeStatus = 200",
        "StockTypeStatus = 200",
    ]


def test_conditions_for_unknown_relation() -> None:
    assert POLICY.conditions_for(["Customers"]) == ["CompanyTypeStatus IS NOT NULL"]


def test_tenant_condition_is_the_last_resort() -> None:
    policy = PolicyConfig(mandatory_conditions=[], tenant_column="TenantId")
    assert policy.conditions_for([]) == ["TenantId IS NOT NULL"]


def test_is_excluded_matches_substrings() -> None:
    assert POLICY.is_excluded("Sales_copy")
    assert POLICY.is_excluded("SALES_COPY_2024")
    assert not POLICY.is_excluded("Sales")


def test_status_condition_uses_configured_suffix() -> None:
    policy = PolicyConfig(status_column_suffix="Status", status_value=1)
    assert policy.status_condition_for("stock") == "StockStatus = 1"
    assert policy.status_condition_for("Customers") is None


def test_inactive_rules_are_hidden() -> None:
    policy = PolicyConfig(
        business_rules=[
            BusinessRule(name="Margin", formula="a"),
            BusinessRule(name="Old", is_active=False),
        ]
    )
    assert [r.name for r in policy.active_rules] == ["Margin"]


def test_config_accepts_camel_case() -> None:
    policy = PolicyConfig.model_validate({"statusValue": 300, "defaultTop": 50})
    assert policy.status_value == 300
    assert policy.default_top == 50


def test_config_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        PolicyConfig.model_validate({"statusValu": 300})


def test_config_is_frozen() -> None:
    with pytest.raises(ValidationError):
        POLICY.status_value = 1


# ---------------------------------------------------------------------------
# PolicyStore
# ---------------------------------------------------------------------------


def test_store_update_replaces_config() -> None:
    store = PolicyStore()
    before = store.current
    after = store.update({"statusValue": 300, "excluded_relation_patterns": ["_bak"]})
    assert store.current is after
    assert after.status_value == 300
    assert after.excluded_relation_patterns == ["_bak"]
    assert before.status_value == 200


def test_store_update_accepts_camel_case_keys() -> None:
    config = PolicyStore().update(
        {
            "mandatoryConditions": ["TenantId = 7"],
            "statusColumnSuffix": "State",
            "tenantColumn": "TenantId",
            "defaultTop": 50,
        }
    )
    assert config.mandatory_conditions == ["TenantId = 7"]
    assert config.status_column_suffix == "State"
    assert config.tenant_column == "TenantId"
    assert config.default_top == 50


def test_store_update_validates() -> None:
    store = PolicyStore()
    with pytest.raises(ValidationError):
        store.update({"defaultTop": 0})
    assert store.current.default_top == 100


def test_store_from_json(tmp_path) -> None:
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({"mandatoryConditions": ["TenantId = 7"], "statusValue": 1}))
    store = PolicyStore.from_json(path)
    assert store.current.conditions_for(["Sales"]) == ["TenantId = 7", "SalesTypeStatus = 1"]


# ---------------------------------------------------------------------------
# StatementGuard
# ---------------------------------------------------------------------------


def test_guard_accepts_select() -> None:
    GUARD.check_statement("SELECT a FROM Sales WHERE a = 'DROP TABLE x';", POLICY)


def test_guard_accepts_parenthesized_select() -> None:
    GUARD.check_statement("(SELECT a FROM Sales) UNION (SELECT a FROM Stock);", POLICY)


@pytest.mark.parametrize(
    "sql, keyword",
    [
        ("DELETE FROM Sales;", "DELETE"),
        ("update Sales set a = 1", "UPDATE"),
        ("WITH x AS (SELECT 1) SELECT * FROM x", "WITH"),
        ("EXEC sp_who", "EXEC"),
    ],
)
def test_guard_rejects_non_select(sql: str, keyword: str) -> None:
    with pytest.raises(NonSelectStatementError) as exc_info:
        GUARD.check_statement(sql, POLICY)
    assert exc_info.value.details["leading_keyword"] == keyword


def test_guard_rejects_empty_statement() -> None:
    with pytest.raises(NonSelectStatementError, match="empty statement"):
        GUARD.check_statement("  ", POLICY)


def test_guard_rejects_stacked_statements() -> None:
    with pytest.raises(NonSelectStatementError, match="single statement"):
        GUARD.check_statement("SELECT 1; DROP TABLE Sales;", POLICY)


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * INTO Sales_backup FROM Sales;",
        "select a into #scratch from Sales",
        "SELECT a FROM (SELECT a INTO x FROM Sales) t;",
    ],
)
def test_guard_rejects_select_into(sql: str) -> None:
    with pytest.raises(NonSelectStatementError, match="INTO") as exc_info:
        GUARD.check_statement(sql, POLICY)
    assert exc_info.value.details["leading_keyword"] == "SELECT"


def test_guard_accepts_into_inside_literals_and_brackets() -> None:
    GUARD.check_statement("SELECT [into], 'SELECT * INTO x' FROM Sales;", POLICY)


def test_guard_reads_past_leading_comments() -> None:
    with pytest.raises(NonSelectStatementError) as exc_info:
        GUARD.check_statement("/* cleanup */ DROP TABLE Sales;", POLICY)
    assert exc_info.value.details["leading_keyword"] == "DROP"


def test_guard_ignores_semicolons_in_literals() -> None:
    GUARD.check_statement("SELECT a FROM Sales WHERE b = 'x; DROP TABLE y';", POLICY)


def test_guard_rejects_excluded_relation_in_subquery() -> None:
    sql = "SELECT a FROM Sales WHERE a IN (SELECT a FROM dbo.Sales_copy);"
    with pytest.raises(ExcludedRelationError) as exc_info:
        GUARD.check_statement(sql, POLICY)
    assert exc_info.value.details["relation"] == "Sales_copy"
    assert exc_info.value.code == "EXCLUDED_RELATION"


def test_guard_rejects_excluded_request_relation() -> None:
    request = CanonicalRequest(relations=["Sales", "Stock_copy"])
    with pytest.raises(PolicyViolationError) as exc_info:
        GUARD.check_request(request, POLICY)
    assert exc_info.value.to_error_response()["error"] == "EXCLUDED_RELATION"


def test_guard_rejects_excluded_projection_relation() -> None:
    request = CanonicalRequest(relations=["Sales"], projections={"Sales_copy": ["a"]})
    with pytest.raises(ExcludedRelationError):
        GUARD.check_request(request, POLICY)
