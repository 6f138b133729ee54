"""Schema Catalog Accessors."""

from guardql.catalog.base import SchemaCatalog
from guardql.catalog.sqlalchemy_catalog import SQLAlchemyCatalog

__all__ = ["SQLAlchemyCatalog", "SchemaCatalog"]
