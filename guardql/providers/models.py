"""Provider kinds and the model registry."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from guardql.settings import Settings


class ProviderKind(str, Enum):
    """Closed set of model transports."""

    GROQ = "groq"
    HUGGINGFACE = "huggingface"
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"
    LOCAL = "local"


class AIModel(BaseModel):
    """A model the provider chain can dispatch to.

    Attributes:
        id: Model identifier sent to the provider.
        name: Display name.
        provider: Transport used to reach the model.
        description: One-line description.
        context_length: Context window in tokens (0 when not applicable).
        free: Whether the model is usable without a paid plan.
        requires_key: Whether an API key must be configured.
        key_name: Environment variable holding the key.
    """

    model_config = ConfigDict(
        extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    id: str
    name: str
    provider: ProviderKind
    description: str = ""
    context_length: int = 0
    free: bool = True
    requires_key: bool = True
    key_name: str | None = None


LOCAL_TEMPLATE_MODEL_ID = "local-template"

MODEL_REGISTRY: tuple[AIModel, ...] = (
    AIModel(
        id="llama-3.3-70b-versatile",
        name="Llama 3.3 70B",
        provider=ProviderKind.GROQ,
        description="Fast, high-quality responses for SQL generation",
        context_length=32768,
        free=False,
        key_name="GROQ_API_KEY",
    ),
    AIModel(
        id="meta-llama/Llama-3.1-8B-Instruct",
        name="Llama 3.1 8B Instruct",
        provider=ProviderKind.HUGGINGFACE,
        description="Meta Llama 3.1 through the Hugging Face router",
        context_length=8192,
        key_name="HUGGINGFACE_API_KEY",
    ),
    AIModel(
        id="mistralai/Mistral-7B-Instruct-v0.3",
        name="Mistral 7B Instruct",
        provider=ProviderKind.HUGGINGFACE,
        description="Mistral instruction-following model",
        context_length=8192,
        key_name="HUGGINGFACE_API_KEY",
    ),
    AIModel(
        id="meta-llama/llama-3.2-3b-instruct:free",
        name="Llama 3.2 3B",
        provider=ProviderKind.OPENROUTER,
        description="Free Llama 3.2 model",
        context_length=131072,
        key_name="OPENROUTER_API_KEY",
    ),
    AIModel(
        id="qwen/qwen-2-7b-instruct:free",
        name="Qwen 2 7B",
        provider=ProviderKind.OPENROUTER,
        description="Free Qwen 2 instruction model",
        context_length=32768,
        key_name="OPENROUTER_API_KEY",
    ),
    AIModel(
        id="llama3.1:latest",
        name="Llama 3.1 (Ollama)",
        provider=ProviderKind.OLLAMA,
        description="Any model served by a local Ollama instance",
        requires_key=False,
    ),
    AIModel(
        id=LOCAL_TEMPLATE_MODEL_ID,
        name="Template Generator",
        provider=ProviderKind.LOCAL,
        description="Rule-based SQL template generator (no API required)",
        requires_key=False,
    ),
)


def get_model(model_id: str) -> AIModel | None:
    """Registry entry for ``model_id``, or ``None``."""
    return next((m for m in MODEL_REGISTRY if m.id == model_id), None)


def available_models(settings: Settings) -> list[AIModel]:
    """Models usable with ``settings``.

    Keyed models need their key configured; Ollama models need a base URL.
    The local template model is always available.
    """
    models = []
    for model in MODEL_REGISTRY:
        if model.provider is ProviderKind.OLLAMA and not settings.ollama_base_url:
            continue
        if model.requires_key and not settings.has_key(model.key_name):
            continue
        models.append(model)
    return models
