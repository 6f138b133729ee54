"""Compiler registry.

``CompilerFactory`` maps dialect names to
:class:`~guardql.compile.base.SQLCompiler` classes so the engine can be
configured by name (``Settings.dialect``) and new dialects can be added
without editing the engine.

Usage::

    from guardql.compile.registry import CompilerFactory

    @CompilerFactory.register("mssql")
    class TSQLCompiler(SQLCompiler):
        ...
"""

from __future__ import annotations

from collections.abc import Callable
from typing import ClassVar

from guardql.compile.base import SQLCompiler
from guardql.errors import ConfigurationError


class CompilerFactory:
    """Registry mapping dialect names to :class:`SQLCompiler` classes."""

    _compilers: ClassVar[dict[str, type[SQLCompiler]]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[type[SQLCompiler]], type[SQLCompiler]]:
        """Decorator that registers a compiler class under ``name``."""

        def decorator(compiler_cls: type[SQLCompiler]) -> type[SQLCompiler]:
            cls._compilers[name] = compiler_cls
            return compiler_cls

        return decorator

    @classmethod
    def register_class(cls, name: str, compiler_cls: type[SQLCompiler]) -> None:
        """Register a compiler class without using the decorator form."""
        cls._compilers[name] = compiler_cls

    @classmethod
    def create(cls, name: str) -> SQLCompiler:
        """Instantiate the compiler registered for ``name``.

        Raises:
            ConfigurationError: If no compiler is registered for ``name``.
        """
        compiler_cls = cls._compilers.get(name)
        if compiler_cls is None:
            registered = sorted(cls._compilers)
            raise ConfigurationError(
                f"Unsupported dialect: '{name}'. Registered dialects: {registered}."
            )
        return compiler_cls()

    @classmethod
    def registered_targets(cls) -> list[str]:
        """Return the sorted list of registered dialect names."""
        return sorted(cls._compilers)
