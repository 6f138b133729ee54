"""Environment-driven runtime settings.

API keys and timeouts are read from the process environment, after loading
a ``.env`` file when one is present.
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

_KEY_NAMES = ("GROQ_API_KEY", "HUGGINGFACE_API_KEY", "OPENROUTER_API_KEY")


class Settings(BaseModel):
    """Runtime settings for the engine and provider chain.

    Attributes:
        api_keys: Provider API keys keyed by environment variable name.
        ollama_base_url: Base URL of a local Ollama server, if any.
        probe_timeout: Seconds a validation probe may run.
        provider_timeout: Seconds an external model call may run.
        default_model: Model id used when a request names none.
        dialect: Compiler registered in
            :class:`~guardql.compile.registry.CompilerFactory`.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    api_keys: dict[str, str] = Field(default_factory=dict)
    ollama_base_url: str | None = None
    probe_timeout: float = Field(default=10.0, gt=0)
    provider_timeout: float = Field(default=30.0, gt=0)
    default_model: str = "local-template"
    dialect: str = "mssql"

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        dotenv: bool = True,
        dotenv_path: str | Path | None = None,
    ) -> Settings:
        """Build settings from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ`` (tests).
            dotenv: Whether to load a ``.env`` file first.  Ignored when
                ``environ`` is given.
            dotenv_path: File to load; defaults to the nearest ``.env``
                found from the working directory upwards.
        """
        if environ is None:
            if dotenv:
                load_dotenv(dotenv_path or find_dotenv(usecwd=True), override=False)
            environ = os.environ
        keys = {name: environ[name] for name in _KEY_NAMES if environ.get(name)}
        return cls(
            api_keys=keys,
            ollama_base_url=environ.get("OLLAMA_BASE_URL") or None,
            probe_timeout=float(environ.get("GUARDQL_PROBE_TIMEOUT", "10")),
            provider_timeout=float(environ.get("GUARDQL_PROVIDER_TIMEOUT", "30")),
            default_model=environ.get("GUARDQL_DEFAULT_MODEL", "local-template"),
            dialect=environ.get("GUARDQL_DIALECT", "mssql"),
        )

    def has_key(self, key_name: str | None) -> bool:
        """True when ``key_name`` is ``None`` or a non-empty key is configured."""
        return key_name is None or bool(self.api_keys.get(key_name))
