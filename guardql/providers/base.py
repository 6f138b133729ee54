"""The capability every model transport implements."""
from __future__ import annotations

from abc import ABC, abstractmethod


class AIProvider(ABC):
    """Turns a prompt into raw model text."""

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str, model_id: str) -> str:
        """Return the model's raw reply.

        Raises:
            ProviderError: On any transport, authentication or quota failure.
        """
