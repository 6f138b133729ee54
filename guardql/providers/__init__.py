"""AI Provider Chain: remote chat models with a local template fallback."""
from guardql.providers.base import AIProvider
from guardql.providers.chain import Candidate, ProviderChain, extract_sql
from guardql.providers.chat import ChatModelProvider
from guardql.providers.local import DEFAULT_TEMPLATES, LocalTemplate, LocalTemplateGenerator
from guardql.providers.models import (
    LOCAL_TEMPLATE_MODEL_ID,
    MODEL_REGISTRY,
    AIModel,
    ProviderKind,
    available_models,
    get_model,
)

__all__ = [
    "AIModel",
    "AIProvider",
    "Candidate",
    "ChatModelProvider",
    "DEFAULT_TEMPLATES",
    "LOCAL_TEMPLATE_MODEL_ID",
    "LocalTemplate",
    "LocalTemplateGenerator",
    "MODEL_REGISTRY",
    "ProviderChain",
    "ProviderKind",
    "available_models",
    "extract_sql",
    "get_model",
]
