"""LangChain chat-model transports.

Groq, OpenRouter and the Hugging Face router all expose OpenAI-compatible
chat endpoints, so one ``ChatOpenAI`` configuration per base URL covers
them.  A local Ollama server is reached through ``ChatOllama``.  Every call
carries the configured timeout and is never retried.
"""
from __future__ import annotations

import logging

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_ollama import ChatOllama
from langchain_openai import ChatOpenAI

from guardql.errors import ProviderError
from guardql.providers.base import AIProvider
from guardql.providers.models import ProviderKind
from guardql.settings import Settings

logger = logging.getLogger(__name__)

OPENAI_COMPATIBLE_ENDPOINTS: dict[ProviderKind, tuple[str, str]] = {
    ProviderKind.GROQ: ("https://api.groq.com/openai/v1", "GROQ_API_KEY"),
    ProviderKind.OPENROUTER: ("https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"),
    ProviderKind.HUGGINGFACE: ("https://router.huggingface.co/v1", "HUGGINGFACE_API_KEY"),
}

_TEMPERATURE = 0.1
_MAX_TOKENS = 2000


class ChatModelProvider(AIProvider):
    """An :class:`AIProvider` backed by a LangChain chat model.

    Args:
        kind: Remote provider kind.
        settings: Source of API keys, the Ollama URL and the timeout.
        chat_model: Pre-built chat model used for every call instead of
            one built per model id (tests inject a fake here).
    """

    def __init__(
        self,
        kind: ProviderKind,
        settings: Settings,
        chat_model: BaseChatModel | None = None,
    ) -> None:
        if kind is ProviderKind.LOCAL:
            raise ValueError("The local template generator is not a chat model.")
        self.kind = kind
        self._settings = settings
        self._chat_model = chat_model

    def complete(self, system_prompt: str, user_prompt: str, model_id: str) -> str:
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]
        try:
            llm = self._chat_model or self._build_chat_model(model_id)
            response = llm.invoke(messages)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(
                f"{self.kind.value} call failed (model={model_id!r}): {exc}",
                provider=self.kind.value,
            ) from exc
        return _content_text(response.content)

    def _build_chat_model(self, model_id: str) -> BaseChatModel:
        timeout = self._settings.provider_timeout
        if self.kind is ProviderKind.OLLAMA:
            if not self._settings.ollama_base_url:
                raise ProviderError("OLLAMA_BASE_URL is not configured", provider=self.kind.value)
            return ChatOllama(
                model=model_id,
                base_url=self._settings.ollama_base_url,
                temperature=_TEMPERATURE,
                num_predict=_MAX_TOKENS,
                client_kwargs={"timeout": timeout},
            )

        base_url, key_name = OPENAI_COMPATIBLE_ENDPOINTS[self.kind]
        api_key = self._settings.api_keys.get(key_name)
        if not api_key:
            raise ProviderError(f"{key_name} is required", provider=self.kind.value)
        logger.debug("Calling %s model %s", self.kind.value, model_id)
        return ChatOpenAI(
            model=model_id,
            api_key=api_key,
            base_url=base_url,
            temperature=_TEMPERATURE,
            max_tokens=_MAX_TOKENS,
            timeout=timeout,
            max_retries=0,
        )


def _content_text(content: str | list) -> str:
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)
