"""Shared pytest fixtures for GuardQL tests."""
from __future__ import annotations

import pytest

from guardql.compile.mssql import TSQLCompiler
from guardql.policy.config import PolicyConfig
from guardql.schema.catalog import CatalogSnapshot
from tests.fixtures import load_catalog_snapshot


@pytest.fixture(scope="session")
def snapshot() -> CatalogSnapshot:
    """Sample catalog shared across all tests."""
    return load_catalog_snapshot()


@pytest.fixture
def policy() -> PolicyConfig:
    return PolicyConfig()


@pytest.fixture(scope="session")
def compiler() -> TSQLCompiler:
    return TSQLCompiler()
