"""Unit tests for Fuzzy Identifier Repair."""

from __future__ import annotations

import pytest

from guardql.validate.fuzzy import FuzzyIdentifierRepair, levenshtein, similarity
from tests.fixtures import load_catalog_snapshot

SNAPSHOT = load_catalog_snapshot()
FUZZY = FuzzyIdentifierRepair()


def test_levenshtein() -> None:
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("same", "same") == 0


def test_similarity_is_case_insensitive() -> None:
    assert similarity("SalesAmount", "salesamount") == 1.0
    assert similarity("", "") == 1.0
    assert similarity("abcd", "abcx") == 0.75


@pytest.mark.parametrize(
    "invalid, relation, expected",
    [
        # exact, ignoring case
        ("salesamount", "Sales", "SalesAmount"),
        # substring
        ("Color", "Stock", "ColorName"),
        # domain aliases
        ("SalesAmt", "Sales", "SalesAmount"),
        ("SalesStatus", "Sales", "SalesTypeStatus"),
        ("ItemNo", "Stock", "ItemCode"),
        ("StockQuantity", "Stock", "StockQty"),
        # edit distance
        ("SalesAmuont", "Sales", "SalesAmount"),
        ("CustmerName", "Sales", "CustomerName"),
    ],
)
def test_repair_strategies(invalid: str, relation: str, expected: str) -> None:
    assert FUZZY.repair(invalid, relation, SNAPSHOT) == expected


def test_no_close_match() -> None:
    assert FUZZY.repair("Zebra", "Sales", SNAPSHOT) is None


def test_unknown_relation() -> None:
    assert FUZZY.repair("SalesAmt", "Customers", SNAPSHOT) is None


def test_empty_name() -> None:
    assert FUZZY.repair("", "Sales", SNAPSHOT) is None


def test_threshold_is_configurable() -> None:
    strict = FuzzyIdentifierRepair(threshold=0.9)
    assert strict.repair("SalesAmuont", "Sales", SNAPSHOT) is None
