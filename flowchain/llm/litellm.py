"""LiteLLM-backed provider covering OpenAI, Anthropic and OpenAI-compatible servers."""

from __future__ import annotations

import logging
from typing import Any

import litellm

from flowchain.config import LLMSettings
from flowchain.llm.provider import LLMError, LLMOptions, LLMProvider

logger = logging.getLogger(__name__)

# LiteLLM routes on a "<provider>/<model>" prefix. Local and custom servers
# speak the OpenAI chat-completions protocol at a caller-supplied base URL.
_PROVIDER_PREFIX = {
    "openai": "openai",
    "anthropic": "anthropic",
    "local": "openai",
    "custom": "openai",
}


def litellm_model_name(provider: str, model: str) -> str:
    """Qualify ``model`` with the LiteLLM provider prefix."""
    if "/" in model:
        return model
    prefix = _PROVIDER_PREFIX.get(provider)
    if prefix is None:
        raise LLMError(f"Unsupported provider: {provider}")
    return f"{prefix}/{model}"


class LiteLLMProvider(LLMProvider):
    """
    LLM provider that delegates to ``litellm.acompletion``.

    Example:
        provider = LiteLLMProvider(LLMSettings.load())
        text = await provider.send_message("Summarise this", options=LLMOptions(model="gpt-4o-mini"))
    """

    def __init__(self, settings: LLMSettings | None = None, timeout: float | None = 120.0):
        self.settings = settings or LLMSettings.load()
        self.timeout = timeout

    def _build_request(
        self,
        prompt: str,
        system_prompt: str | None,
        options: LLMOptions | None,
    ) -> dict[str, Any]:
        effective = (options or LLMOptions()).merged_with(self.settings)

        if effective.provider in ("openai", "anthropic") and not effective.api_key:
            raise LLMError("API key is not configured. Set it in configuration.json or the environment.")
        if effective.provider in ("local", "custom") and not effective.base_url:
            raise LLMError(f"Base URL is required for provider '{effective.provider}'")

        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        request: dict[str, Any] = {
            "model": litellm_model_name(effective.provider, effective.model),
            "messages": messages,
            "temperature": effective.temperature,
            "max_tokens": effective.max_tokens,
        }
        if effective.api_key:
            request["api_key"] = effective.api_key
        if effective.base_url:
            request["api_base"] = effective.base_url.rstrip("/")
        if self.timeout is not None:
            request["timeout"] = self.timeout
        if options and options.extra:
            request.update(options.extra)
        return request

    async def send_message(
        self,
        prompt: str,
        system_prompt: str | None = None,
        options: LLMOptions | None = None,
    ) -> str:
        if not isinstance(prompt, str) or not prompt.strip():
            raise LLMError("Message is empty. Provide a non-empty prompt.")

        request = self._build_request(prompt, system_prompt, options)
        logger.debug(f"LLM request: model={request['model']} temperature={request['temperature']}")

        try:
            response = await litellm.acompletion(**request)
        except Exception as e:
            raise LLMError(f"{request['model']} request failed: {e}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError) as e:
            raise LLMError(f"Unexpected response shape from {request['model']}") from e
        return content or ""
