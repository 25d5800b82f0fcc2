"""LLM Provider abstraction for pluggable LLM backends."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any

from flowchain.config import LLMSettings


class LLMError(Exception):
    """An LLM call failed; the message is meant for humans."""


@dataclass
class LLMOptions:
    """Per-call options layered over ``LLMSettings``."""

    provider: str | None = None
    model: str | None = None
    temperature: float | None = None
    api_key: str | None = None
    base_url: str | None = None
    max_tokens: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def merged_with(self, settings: LLMSettings) -> LLMSettings:
        """Fill unset options from ``settings``."""
        return replace(
            settings,
            provider=self.provider or settings.provider,
            model=self.model or settings.model,
            temperature=settings.temperature if self.temperature is None else self.temperature,
            api_key=self.api_key or settings.api_key,
            base_url=self.base_url or settings.base_url,
            max_tokens=self.max_tokens or settings.max_tokens,
        )


class LLMProvider(ABC):
    """
    Abstract LLM provider - plug in any LLM backend.

    The engine treats a call as opaque: prompt plus options in, text out.
    Implementations should handle:
    - API authentication
    - Request/response formatting
    - Their own timeouts (the engine imposes none)

    Failures surface as ``LLMError``. Callers add context; nobody retries.
    """

    @abstractmethod
    async def send_message(
        self,
        prompt: str,
        system_prompt: str | None = None,
        options: LLMOptions | None = None,
    ) -> str:
        """
        Send a single-turn prompt and return the model's text.

        Args:
            prompt: User message
            system_prompt: Optional system prompt
            options: Provider, model, temperature, key, base URL, max tokens

        Returns:
            The response text (may be empty)
        """
        pass
