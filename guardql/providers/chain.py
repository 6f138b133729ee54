"""AI Provider Chain: free text to candidate SQL.

The chain builds one prompt from the live catalog and policy, looks the
requested model up in the registry, and dispatches to the provider for the
model's :class:`~guardql.providers.models.ProviderKind`.  Any
``ProviderError`` switches to the Local Template Generator; it is never
raised to the caller.  Candidates are returned unvalidated; the engine
rewrites and validates them like any other SQL.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

import sqlparse

from guardql.errors import InvalidRequestError, ProviderError
from guardql.policy.config import PolicyConfig
from guardql.prompt.builder import PromptBuilder
from guardql.providers.base import AIProvider
from guardql.providers.chat import ChatModelProvider
from guardql.providers.local import LocalTemplateGenerator
from guardql.providers.models import AIModel, ProviderKind, get_model
from guardql.schema.catalog import CatalogSnapshot
from guardql.settings import Settings

logger = logging.getLogger(__name__)

_FENCED_RE = re.compile(r"```[ \t]*(?:t?sql|mssql)?[ \t]*\n?(.*?)```", re.IGNORECASE | re.DOTALL)
_SELECT_START_RE = re.compile(r"\bSELECT\b", re.IGNORECASE)


def extract_sql(text: str) -> str:
    """Pull the statement out of a model reply.

    A fenced code block wins; otherwise the reply from its first ``SELECT``
    on; otherwise the whole reply.  Only the first statement is kept, so
    prose after a ``;`` never reaches the rewriter.
    """
    fenced = _FENCED_RE.search(text)
    if fenced:
        candidate = fenced.group(1)
    else:
        select = _SELECT_START_RE.search(text)
        candidate = text[select.start() :] if select else text
    statements = sqlparse.split(candidate)
    return statements[0] if statements else candidate.strip()


@dataclass(frozen=True)
class Candidate:
    """Candidate SQL and where it came from.

    Attributes:
        sql: Raw candidate text.
        source: Model id, or ``local-template:<template>``.
        warning: Set when the requested provider failed.
    """

    sql: str
    source: str
    warning: str | None = None


class ProviderChain:
    """Dispatches free-text questions to the configured model.

    Args:
        settings: Keys, timeouts and the default model.
        providers: Provider per kind; remote kinds default to
            :class:`ChatModelProvider`.
        local: Generator used for the local model and on provider failure.
        prompt_builder: Builds the shared prompt.
    """

    def __init__(
        self,
        settings: Settings,
        providers: Mapping[ProviderKind, AIProvider] | None = None,
        local: LocalTemplateGenerator | None = None,
        prompt_builder: PromptBuilder | None = None,
    ) -> None:
        self._settings = settings
        if providers is None:
            providers = {
                kind: ChatModelProvider(kind, settings)
                for kind in ProviderKind
                if kind is not ProviderKind.LOCAL
            }
        self._providers = dict(providers)
        self._local = local or LocalTemplateGenerator()
        self._prompt_builder = prompt_builder or PromptBuilder()

    def generate_from_text(
        self,
        free_text: str,
        catalog: CatalogSnapshot,
        policy: PolicyConfig,
        model_id: str | None = None,
    ) -> str:
        """Candidate SQL for ``free_text``."""
        return self.generate(free_text, catalog, policy, model_id).sql

    def generate(
        self,
        free_text: str,
        catalog: CatalogSnapshot,
        policy: PolicyConfig,
        model_id: str | None = None,
    ) -> Candidate:
        """Like :meth:`generate_from_text`, also reporting the source.

        Raises:
            InvalidRequestError: If ``model_id`` is not in the registry.
        """
        model = self._resolve(model_id or self._settings.default_model)
        if model.provider is ProviderKind.LOCAL:
            return self._from_local(free_text, policy)

        provider = self._providers.get(model.provider)
        try:
            if provider is None:
                raise ProviderError(
                    f"No provider configured for {model.provider.value}",
                    provider=model.provider.value,
                )
            prompt = self._prompt_builder.build(free_text, catalog, policy)
            raw = provider.complete(prompt.system_prompt, prompt.user_prompt, model.id)
            sql = extract_sql(raw)
            if not sql:
                raise ProviderError("The model returned no SQL.", provider=model.provider.value)
        except ProviderError as exc:
            logger.warning(
                "Provider %s failed, using local templates: %s", model.provider.value, exc
            )
            return self._from_local(
                free_text,
                policy,
                warning=f"{model.name} was unavailable; used the local template generator.",
            )
        return Candidate(sql=sql, source=model.id)

    def _from_local(
        self, free_text: str, policy: PolicyConfig, warning: str | None = None
    ) -> Candidate:
        template = self._local.select(free_text)
        return Candidate(
            sql=template.render(policy),
            source=f"local-template:{template.name}",
            warning=warning,
        )

    @staticmethod
    def _resolve(model_id: str) -> AIModel:
        model = get_model(model_id)
        if model is None:
            raise InvalidRequestError(
                f"Unknown model '{model_id}'.",
                code="UNKNOWN_MODEL",
                details={"model_id": model_id},
            )
        return model
