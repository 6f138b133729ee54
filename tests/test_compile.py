"""Unit tests for the SQL synthesizer and the T-SQL compiler."""

from __future__ import annotations

from datetime import date

import pytest

from guardql.compile.base import SQLCompiler
from guardql.compile.builder import QueryBuilder
from guardql.compile.mssql import TSQLCompiler
from guardql.compile.registry import CompilerFactory
from guardql.errors import ConfigurationError, InvalidRequestError
from guardql.policy.config import PolicyConfig
from guardql.schema.request import CanonicalRequest

COMPILER = TSQLCompiler()
POLICY = PolicyConfig()
SALES_CONDITIONS = "CompanyTypeStatus IS NOT NULL AND SalesTypeStatus = 200"


def _synth(policy: PolicyConfig = POLICY, **request) -> str:
    return QueryBuilder(COMPILER).synthesize(CanonicalRequest(**request), policy)


def _where(**filters_request) -> str:
    sql = _synth(relations=["Sales"], **filters_request)
    return sql.split("\n")[2]


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


def test_quote_identifier_brackets_and_escapes() -> None:
    assert COMPILER.quote_identifier("Sales") == "[Sales]"
    assert COMPILER.quote_identifier("odd]name") == "[odd]]name]"


def test_quote_column_keeps_or_drops_relation() -> None:
    assert COMPILER.quote_column("Sales.ItemCode") == "[Sales].[ItemCode]"
    assert COMPILER.quote_column("Sales.ItemCode", keep_relation=False) == "[ItemCode]"
    assert COMPILER.quote_column("[Sales].[ItemCode]") == "[Sales].[ItemCode]"


def test_render_string_doubles_quotes() -> None:
    assert COMPILER.render_string("O'Brien") == "'O''Brien'"


def test_factory_creates_registered_compiler() -> None:
    assert isinstance(CompilerFactory.create("mssql"), TSQLCompiler)
    assert "mssql" in CompilerFactory.registered_targets()


def test_factory_rejects_unknown_dialect() -> None:
    with pytest.raises(ConfigurationError, match="oracle"):
        CompilerFactory.create("oracle")


def test_factory_register_decorator() -> None:
    @CompilerFactory.register("test-dialect")
    class _BacktickCompiler(SQLCompiler):
        @property
        def dialect_name(self) -> str:
            return "test-dialect"

        def quote_identifier(self, name: str) -> str:
            return f"`{name}`"

        def top_clause(self, limit: int) -> str:
            return f"TOP {limit}"

    sql = QueryBuilder(CompilerFactory.create("test-dialect")).synthesize(
        CanonicalRequest(relations=["Sales"]), POLICY
    )
    assert sql.startswith("SELECT *\nFROM `Sales`")


# ---------------------------------------------------------------------------
# Statement shape
# ---------------------------------------------------------------------------


def test_aggregate_only_request() -> None:
    sql = _synth(relations=["Sales"], aggregations=[{"column": "Amount", "function": "SUM"}])
    assert sql == f"SELECT SUM([Amount])\nFROM [Sales]\nWHERE {SALES_CONDITIONS}"


def test_bare_relation_selects_star() -> None:
    assert _synth(relations=["Stock"]).startswith("SELECT *\nFROM [Stock]\n")


def test_full_request() -> None:
    sql = _synth(
        relations=["Sales"],
        projections={"Sales": ["ItemCode"]},
        aggregations=[{"column": "Amount", "function": "SUM", "alias": "Total"}],
        groupBy=["Sales.ItemCode"],
        sort=[{"column": "Total", "direction": "DESC"}],
        limit=10,
    )
    assert sql == (
        "SELECT TOP 10 SUM([Amount]) AS [Total], [Sales].[ItemCode]\n"
        "FROM [Sales]\n"
        f"WHERE {SALES_CONDITIONS}\n"
        "GROUP BY [ItemCode]\n"
        "ORDER BY [Total] DESC"
    )


def test_distinct_precedes_top() -> None:
    sql = _synth(relations=["Sales"], projections={"Sales": ["ItemCode"]}, distinct=True, limit=5)
    assert sql.startswith("SELECT DISTINCT TOP 5 [Sales].[ItemCode]")


def test_count_without_column_is_count_star() -> None:
    sql = _synth(relations=["Sales"], aggregations=[{"function": "COUNT", "alias": "Rows"}])
    assert sql.startswith("SELECT COUNT(*) AS [Rows]")


def test_count_distinct() -> None:
    sql = _synth(
        relations=["Sales"], aggregations=[{"column": "CustomerName", "function": "COUNT_DISTINCT"}]
    )
    assert sql.startswith("SELECT COUNT(DISTINCT [CustomerName])")


def test_aggregated_projection_is_not_repeated() -> None:
    sql = _synth(
        relations=["Sales"],
        projections={"Sales": ["ItemCode", "SalesAmount"]},
        aggregations=[{"column": "Sales.SalesAmount", "function": "SUM"}],
    )
    assert sql.startswith("SELECT SUM([Sales].[SalesAmount]), [Sales].[ItemCode]\n")


def test_additional_relations_join_on_true() -> None:
    sql = _synth(relations=["Sales", "Stock"])
    assert "\nINNER JOIN [Stock] ON 1=1\n" in sql
    assert "SalesTypeStatus = 200 AND StockTypeStatus = 200" in sql


def test_unrecognized_relation_gets_only_mandatory_conditions() -> None:
    assert _synth(relations=["Customers"]).endswith("WHERE CompanyTypeStatus IS NOT NULL")


def test_tenant_condition_when_nothing_else_applies() -> None:
    policy = PolicyConfig(mandatory_conditions=[])
    assert _synth(policy, relations=["Customers"]).endswith("WHERE CompanyPincode IS NOT NULL")


def test_policy_status_value_is_used() -> None:
    sql = _synth(PolicyConfig(status_value=300), relations=["Stock"])
    assert "StockTypeStatus = 300" in sql


def test_empty_relations_rejected() -> None:
    with pytest.raises(InvalidRequestError) as exc_info:
        _synth(relations=[])
    assert exc_info.value.code == "EMPTY_RELATIONS"


def test_synthesis_is_deterministic() -> None:
    request = {
        "relations": ["Sales"],
        "filters": [{"column": "Region", "operator": "IN", "value": ["North", "South"]}],
    }
    assert _synth(**request) == _synth(**request)


# ---------------------------------------------------------------------------
# Filters and literals
# ---------------------------------------------------------------------------


def test_between_filter() -> None:
    where = _where(filters=[{"column": "Price", "operator": "BETWEEN", "value": 10, "value2": 100}])
    assert where == f"WHERE {SALES_CONDITIONS} AND [Price] BETWEEN 10 AND 100"


def test_in_filter() -> None:
    where = _where(filters=[{"column": "Region", "operator": "IN", "value": ["North", "South"]}])
    assert where.endswith("[Region] IN ('North', 'South')")


def test_not_in_filter() -> None:
    where = _where(filters=[{"column": "Region", "operator": "NOT IN", "value": ["East"]}])
    assert where.endswith("[Region] NOT IN ('East')")


def test_like_filter_wraps_in_wildcards() -> None:
    where = _where(filters=[{"column": "CustomerName", "operator": "LIKE", "value": "acme"}])
    assert where.endswith("[CustomerName] LIKE '%acme%'")


def test_null_checks_take_no_value() -> None:
    where = _where(
        filters=[
            {"column": "ItemCode", "operator": "IS NULL"},
            {"column": "Sales.SalesDate", "operator": "IS NOT NULL"},
        ]
    )
    assert where.endswith("[ItemCode] IS NULL AND [Sales].[SalesDate] IS NOT NULL")


def test_or_join_is_parenthesized() -> None:
    where = _where(
        filters=[
            {"column": "Region", "operator": "=", "value": "North"},
            {"column": "Region", "operator": "=", "value": "South", "join": "OR"},
        ]
    )
    assert where == f"WHERE {SALES_CONDITIONS} AND ([Region] = 'North' OR [Region] = 'South')"


@pytest.mark.parametrize(
    "value, rendered",
    [
        ("5", "5"),
        ("-2.5", "-2.5"),
        (7, "7"),
        ("true", "1"),
        (False, "0"),
        ("2024-01-31", "'2024-01-31'"),
        (date(2024, 1, 31), "'2024-01-31'"),
        ("O'Brien", "'O''Brien'"),
    ],
)
def test_literal_coercion(value, rendered: str) -> None:
    where = _where(filters=[{"column": "X", "operator": "=", "value": value}])
    assert where.endswith(f"[X] = {rendered}")
