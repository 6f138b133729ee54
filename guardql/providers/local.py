"""Local Template Generator: keyword-triggered canned queries.

Used for the ``local-template`` model and whenever a remote provider fails.
Templates are tried in order and the first whose trigger matches the
lower-cased question wins; the last template always matches.  Each template
embeds the policy conditions of the relation it reads.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from guardql.policy.config import PolicyConfig


@dataclass(frozen=True)
class LocalTemplate:
    """A canned query shape.

    Attributes:
        name: Template name, reported as the candidate source.
        relation: Relation the query reads.
        matches: Trigger over the lower-cased question.
        sql: Statement with a ``{conditions}`` placeholder.
    """

    name: str
    relation: str
    matches: Callable[[str], bool]
    sql: str

    def render(self, policy: PolicyConfig) -> str:
        conditions = " AND ".join(policy.conditions_for([self.relation]))
        return self.sql.format(conditions=conditions)


def _any(*words: str) -> Callable[[str], bool]:
    return lambda text: any(w in text for w in words)


def _all(*words: str) -> Callable[[str], bool]:
    return lambda text: all(w in text for w in words)


def _stock_by_item_and_color(text: str) -> bool:
    return _any("stock", "inventory")(text) and "color" in text and _any("item", "group")(text)


DEFAULT_TEMPLATES: tuple[LocalTemplate, ...] = (
    LocalTemplate(
        "profit_margin",
        "Sales",
        _all("profit", "margin"),
        "SELECT ItemCode, ItemDescription, "
        "ISNULL((SalesFinalSaleRate - ISNULL(SalesPurchaseCost, 0)) * 100.0 "
        "/ NULLIF(SalesFinalSaleRate, 0), 0) AS ProfitMargin "
        "FROM Sales WHERE {conditions} AND SalesFinalSaleRate > 0 "
        "ORDER BY ProfitMargin DESC",
    ),
    LocalTemplate(
        "sales",
        "Sales",
        _any("sales", "revenue", "amount"),
        "SELECT ItemCode, ItemDescription, SUM(SalesProductTotalAmount) AS TotalSalesAmount "
        "FROM Sales WHERE {conditions} "
        "GROUP BY ItemCode, ItemDescription ORDER BY TotalSalesAmount DESC",
    ),
    LocalTemplate(
        "stock_by_item_and_color",
        "Stock",
        _stock_by_item_and_color,
        "SELECT ItemCode, ItemDescription, ColorName, SUM(StockQty) AS CurrentStockQty "
        "FROM Stock WHERE {conditions} "
        "GROUP BY ItemCode, ItemDescription, ColorName ORDER BY CurrentStockQty DESC",
    ),
    LocalTemplate(
        "stock",
        "Stock",
        _any("stock", "inventory"),
        "SELECT ItemCode, ItemDescription, SUM(StockQty) AS TotalStock "
        "FROM Stock WHERE {conditions} "
        "GROUP BY ItemCode, ItemDescription ORDER BY TotalStock DESC",
    ),
    LocalTemplate(
        "customer",
        "Sales",
        _any("customer", "client"),
        "SELECT CustomerName, COUNT(*) AS OrderCount, "
        "SUM(SalesProductTotalAmount) AS TotalAmount "
        "FROM Sales WHERE {conditions} "
        "GROUP BY CustomerName ORDER BY TotalAmount DESC",
    ),
    LocalTemplate(
        "recent_rows",
        "Sales",
        lambda text: True,
        "SELECT TOP 100 * FROM Sales WHERE {conditions} ORDER BY SalesDate DESC",
    ),
)


class LocalTemplateGenerator:
    """Picks and renders a :class:`LocalTemplate` for a question.

    Args:
        templates: Ordered templates; the last should match anything.
    """

    def __init__(self, templates: tuple[LocalTemplate, ...] = DEFAULT_TEMPLATES) -> None:
        self._templates = templates

    def select(self, free_text: str) -> LocalTemplate:
        text = free_text.lower()
        for template in self._templates:
            if template.matches(text):
                return template
        return self._templates[-1]

    def generate(self, free_text: str, policy: PolicyConfig) -> str:
        """Return the rendered template for ``free_text``."""
        return self.select(free_text).render(policy)
