"""Unit tests for the model registry, chat providers, local templates and the chain."""

from __future__ import annotations

import pytest
from langchain_core.language_models import FakeListChatModel
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from guardql.errors import InvalidRequestError, ProviderError
from guardql.policy.config import PolicyConfig
from guardql.policy.guard import StatementGuard
from guardql.providers.base import AIProvider
from guardql.providers.chain import ProviderChain, extract_sql
from guardql.providers.chat import ChatModelProvider
from guardql.providers.local import DEFAULT_TEMPLATES, LocalTemplateGenerator
from guardql.providers.models import ProviderKind, available_models, get_model
from guardql.rewrite.rewriter import rewrite
from guardql.settings import Settings
from tests.fixtures import load_catalog_snapshot

SNAPSHOT = load_catalog_snapshot()
POLICY = PolicyConfig()
GROQ_MODEL = "llama-3.3-70b-versatile"
GROQ_SETTINGS = Settings(default_model=GROQ_MODEL)


class _QuotaExceededModel(BaseChatModel):
    """Chat model whose every call fails like an exhausted quota."""

    @property
    def _llm_type(self) -> str:
        return "quota-exceeded"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        raise RuntimeError("429 Too Many Requests: quota exceeded")


class _RecordingProvider(AIProvider):
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls: list[tuple[str, str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str, model_id: str) -> str:
        self.calls.append((system_prompt, user_prompt, model_id))
        return self.reply


def _groq_chain(provider: AIProvider) -> ProviderChain:
    return ProviderChain(GROQ_SETTINGS, providers={ProviderKind.GROQ: provider})


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_only_local_model_without_configuration() -> None:
    assert [m.id for m in available_models(Settings())] == ["local-template"]


def test_configured_providers_become_available() -> None:
    settings = Settings(
        api_keys={"GROQ_API_KEY": "gsk-test"}, ollama_base_url="http://localhost:11434"
    )
    kinds = {m.provider for m in available_models(settings)}
    assert kinds == {ProviderKind.GROQ, ProviderKind.OLLAMA, ProviderKind.LOCAL}


def test_get_model() -> None:
    model = get_model(GROQ_MODEL)
    assert model.provider is ProviderKind.GROQ
    assert model.key_name == "GROQ_API_KEY"
    assert model.model_dump(by_alias=True)["contextLength"] == 32768
    assert get_model("gpt-9") is None


# ---------------------------------------------------------------------------
# Chat providers
# ---------------------------------------------------------------------------


def test_chat_provider_returns_model_text() -> None:
    fake = FakeListChatModel(responses=["```sql\nSELECT ItemCode FROM Sales\n```"])
    provider = ChatModelProvider(ProviderKind.GROQ, GROQ_SETTINGS, chat_model=fake)
    assert provider.complete("system", "user", GROQ_MODEL) == (
        "```sql\nSELECT ItemCode FROM Sales\n```"
    )


def test_chat_provider_wraps_failures() -> None:
    provider = ChatModelProvider(
        ProviderKind.OPENROUTER, Settings(), chat_model=_QuotaExceededModel()
    )
    with pytest.raises(ProviderError, match="quota exceeded") as exc_info:
        provider.complete("system", "user", "qwen/qwen-2-7b-instruct:free")
    assert exc_info.value.provider == "openrouter"


def test_chat_provider_requires_key() -> None:
    provider = ChatModelProvider(ProviderKind.GROQ, Settings())
    with pytest.raises(ProviderError, match="GROQ_API_KEY is required"):
        provider.complete("system", "user", GROQ_MODEL)


def test_ollama_requires_base_url() -> None:
    provider = ChatModelProvider(ProviderKind.OLLAMA, Settings())
    with pytest.raises(ProviderError, match="OLLAMA_BASE_URL"):
        provider.complete("system", "user", "llama3.1:latest")


def test_chat_models_built_per_kind() -> None:
    settings = Settings(
        api_keys={"HUGGINGFACE_API_KEY": "hf-test"}, ollama_base_url="http://localhost:11434"
    )
    hf = ChatModelProvider(ProviderKind.HUGGINGFACE, settings)
    ollama = ChatModelProvider(ProviderKind.OLLAMA, settings)
    assert isinstance(hf._build_chat_model("mistralai/Mistral-7B-Instruct-v0.3"), ChatOpenAI)
    assert isinstance(ollama._build_chat_model("llama3.1:latest"), ChatOllama)


def test_local_kind_is_not_a_chat_provider() -> None:
    with pytest.raises(ValueError):
        ChatModelProvider(ProviderKind.LOCAL, Settings())


# ---------------------------------------------------------------------------
# Reply extraction
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "reply, sql",
    [
        ("Here you go:\n```sql\nSELECT 1\n```\nEnjoy!", "SELECT 1"),
        ("```\nSELECT a FROM b\n```", "SELECT a FROM b"),
        ("Sure! SELECT a FROM b", "SELECT a FROM b"),
        ("  no query here  ", "no query here"),
        ("SELECT a FROM b; This query returns every row.", "SELECT a FROM b;"),
        (
            "```sql\nSELECT a FROM b WHERE c = 'x;y';\nSELECT 2;\n```",
            "SELECT a FROM b WHERE c = 'x;y';",
        ),
    ],
)
def test_extract_sql(reply: str, sql: str) -> None:
    assert extract_sql(reply) == sql


# ---------------------------------------------------------------------------
# Local templates
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "question, template",
    [
        ("Profit margin by item", "profit_margin"),
        ("total revenue this month", "sales"),
        ("stock for each item and color", "stock_by_item_and_color"),
        ("current inventory levels", "stock"),
        ("top clients", "customer"),
        ("what happened yesterday", "recent_rows"),
    ],
)
def test_template_selection(question: str, template: str) -> None:
    assert LocalTemplateGenerator().select(question).name == template


def test_recent_rows_template() -> None:
    assert LocalTemplateGenerator().generate("anything", POLICY) == (
        "SELECT TOP 100 * FROM Sales WHERE CompanyTypeStatus IS NOT NULL "
        "AND SalesTypeStatus = 200 ORDER BY SalesDate DESC"
    )


@pytest.mark.parametrize("template", DEFAULT_TEMPLATES, ids=lambda t: t.name)
def test_templates_are_policy_compliant(template) -> None:
    policy = PolicyConfig(status_value=300)
    sql = rewrite(template.render(policy), policy)
    StatementGuard().check_statement(sql, policy)
    for condition in policy.conditions_for([template.relation]):
        assert condition in sql
    assert rewrite(sql, policy) == sql


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


def test_local_model_uses_templates() -> None:
    chain = ProviderChain(Settings())
    candidate = chain.generate("stock by item and color", SNAPSHOT, POLICY)
    assert candidate.source == "local-template:stock_by_item_and_color"
    assert candidate.warning is None
    assert "GROUP BY ItemCode, ItemDescription, ColorName" in candidate.sql


def test_remote_model_gets_the_shared_prompt() -> None:
    provider = _RecordingProvider("```sql\nSELECT TOP 5 CustomerName FROM Sales\n```")
    candidate = _groq_chain(provider).generate("top customers", SNAPSHOT, POLICY)

    assert candidate.sql == "SELECT TOP 5 CustomerName FROM Sales"
    assert candidate.source == GROQ_MODEL
    assert candidate.warning is None
    system_prompt, user_prompt, model_id = provider.calls[0]
    assert model_id == GROQ_MODEL
    assert user_prompt == "Generate SQL Server T-SQL query for: top customers"
    assert '"name": "SalesAmount"' in system_prompt


def test_provider_failure_falls_back_to_templates() -> None:
    provider = ChatModelProvider(ProviderKind.GROQ, GROQ_SETTINGS, chat_model=_QuotaExceededModel())
    candidate = _groq_chain(provider).generate("total sales by item", SNAPSHOT, POLICY)

    assert candidate.source == "local-template:sales"
    assert candidate.warning == "Llama 3.3 70B was unavailable; used the local template generator."


def test_empty_reply_falls_back_to_templates() -> None:
    candidate = _groq_chain(_RecordingProvider("   ")).generate("stock", SNAPSHOT, POLICY)
    assert candidate.source == "local-template:stock"


def test_missing_provider_falls_back_to_templates() -> None:
    chain = ProviderChain(GROQ_SETTINGS, providers={})
    assert chain.generate("customers", SNAPSHOT, POLICY).source == "local-template:customer"


def test_request_model_overrides_default() -> None:
    provider = _RecordingProvider("SELECT 1")
    sql = _groq_chain(provider).generate_from_text("x", SNAPSHOT, POLICY, "local-template")
    assert sql.startswith("SELECT TOP 100 * FROM Sales")
    assert provider.calls == []


def test_unknown_model_is_rejected() -> None:
    with pytest.raises(InvalidRequestError) as exc_info:
        ProviderChain(Settings()).generate("x", SNAPSHOT, POLICY, "gpt-9")
    assert exc_info.value.code == "UNKNOWN_MODEL"
