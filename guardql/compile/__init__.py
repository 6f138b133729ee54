"""GuardQL synthesis layer: CanonicalRequest → T-SQL."""
from guardql.compile.base import SQLCompiler
from guardql.compile.builder import QueryBuilder
from guardql.compile.mssql import TSQLCompiler
from guardql.compile.registry import CompilerFactory

CompilerFactory.register_class("mssql", TSQLCompiler)

__all__ = [
    "CompilerFactory",
    "QueryBuilder",
    "SQLCompiler",
    "TSQLCompiler",
]
