"""Tests for SQLAlchemyCatalog against a file-backed SQLite database."""

from __future__ import annotations

import time

import pytest
from sqlalchemy import create_engine

from guardql.catalog.sqlalchemy_catalog import SQLAlchemyCatalog
from guardql.compile.mssql import TSQLCompiler
from guardql.errors import ExecutionError, ProbeTimeoutError, UnrepairableQueryError
from guardql.policy.config import PolicyConfig
from guardql.rewrite.rewriter import rewrite
from guardql.validate.diagnosis import ErrorClass, classify
from guardql.validate.loop import ValidationLoop, ValidationStatus

POLICY = PolicyConfig()

_DDL = (
    "CREATE TABLE Sales (SalesNo INTEGER PRIMARY KEY, ItemCode VARCHAR(20), "
    "SalesAmount INTEGER, CompanyTypeStatus INTEGER, SalesTypeStatus INTEGER)",
    "CREATE TABLE Sales_copy (SalesNo INTEGER, SalesAmount INTEGER)",
    "INSERT INTO Sales VALUES (1, 'A-100', 250, 1, 200)",
    "INSERT INTO Sales VALUES (2, 'B-200', 75, 1, 100)",
)

_ENDLESS_COUNT = (
    "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) SELECT max(x) FROM c"
)


@pytest.fixture
def catalog(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'sales.db'}")
    with engine.begin() as conn:
        for statement in _DDL:
            conn.exec_driver_sql(statement)
    catalog = SQLAlchemyCatalog(engine)
    yield catalog
    catalog.close()
    engine.dispose()


def test_describe_omits_excluded_relations(catalog: SQLAlchemyCatalog) -> None:
    snapshot = catalog.describe()
    assert snapshot.relation_names == ["Sales"]
    sales = snapshot.get_relation("sales")
    assert sales.column_names == [
        "SalesNo",
        "ItemCode",
        "SalesAmount",
        "CompanyTypeStatus",
        "SalesTypeStatus",
    ]
    assert sales.columns[1].type == "VARCHAR(20)"


def test_describe_uses_the_current_policy(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE Sales_copy (a INTEGER)")
    policy = PolicyConfig(excluded_relation_patterns=["_bak"])
    catalog = SQLAlchemyCatalog(engine, lambda: policy)
    try:
        assert catalog.describe().relation_names == ["Sales_copy"]
    finally:
        catalog.close()


def test_execute_returns_rows(catalog: SQLAlchemyCatalog) -> None:
    result = catalog.execute("SELECT SalesNo, SalesAmount FROM Sales ORDER BY SalesNo;", 5)
    assert result.columns == ["SalesNo", "SalesAmount"]
    assert result.rows == [
        {"SalesNo": 1, "SalesAmount": 250},
        {"SalesNo": 2, "SalesAmount": 75},
    ]
    assert result.total_count == 2


def test_execute_reports_database_errors(catalog: SQLAlchemyCatalog) -> None:
    with pytest.raises(ExecutionError, match="no such column") as exc_info:
        catalog.execute("SELECT SalesAmt FROM Sales")
    assert exc_info.value.sql == "SELECT SalesAmt FROM Sales"
    diagnosis = classify(exc_info.value)
    assert diagnosis.error_class is ErrorClass.INVALID_COLUMN
    assert diagnosis.identifier == "SalesAmt"


def test_execute_times_out(catalog: SQLAlchemyCatalog, monkeypatch) -> None:
    monkeypatch.setattr(catalog, "_run", lambda statement: time.sleep(0.5))
    with pytest.raises(ProbeTimeoutError):
        catalog.execute("SELECT 1", timeout=0.05)


def test_timed_out_statement_is_cancelled_in_the_database(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'slow.db'}")
    catalog = SQLAlchemyCatalog(engine, max_workers=1)
    try:
        with pytest.raises(ProbeTimeoutError):
            catalog.execute(_ENDLESS_COUNT, timeout=0.2)
        assert catalog.execute("SELECT 1 AS one", timeout=2).rows == [{"one": 1}]
    finally:
        catalog.close()
        engine.dispose()


def test_closed_catalog_rejects_statements(catalog: SQLAlchemyCatalog) -> None:
    catalog.close()
    with pytest.raises(RuntimeError):
        catalog.execute("SELECT 1")


def test_validation_loop_repairs_against_sqlite(catalog: SQLAlchemyCatalog) -> None:
    loop = ValidationLoop(catalog, TSQLCompiler(), probe_timeout=5)
    outcome = loop.validate(rewrite("SELECT SalesAmt FROM Sales", POLICY), POLICY)

    assert outcome.status is ValidationStatus.CORRECTED
    assert outcome.sql == (
        "SELECT SalesAmount FROM Sales "
        "WHERE CompanyTypeStatus IS NOT NULL AND SalesTypeStatus = 200;"
    )
    assert outcome.probes == 2
    rows = catalog.execute(outcome.sql).rows
    assert rows == [{"SalesAmount": 250}]


def test_validation_loop_never_returns_an_unrunnable_fallback(tmp_path) -> None:
    engine = create_engine(f"sqlite:///{tmp_path / 'customers.db'}")
    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE Customer (CustomerId INTEGER, CustomerName TEXT)")
    catalog = SQLAlchemyCatalog(engine)
    loop = ValidationLoop(catalog, TSQLCompiler(), probe_timeout=5)
    try:
        with pytest.raises(UnrepairableQueryError):
            loop.validate(rewrite("SELECT CustomerName FROM Customer", POLICY), POLICY)
    finally:
        catalog.close()
        engine.dispose()
