"""Request, catalog and column-reference models."""

from guardql.schema.catalog import CatalogSnapshot, ColumnInfo, ExecutionResult, RelationInfo
from guardql.schema.column_reference import ColumnReference
from guardql.schema.request import Aggregation, CanonicalRequest, FilterPredicate, SortKey

__all__ = [
    "Aggregation",
    "CanonicalRequest",
    "CatalogSnapshot",
    "ColumnInfo",
    "ColumnReference",
    "ExecutionResult",
    "FilterPredicate",
    "RelationInfo",
    "SortKey",
]
