"""LLM provider abstraction."""

from flowchain.llm.litellm import LiteLLMProvider
from flowchain.llm.mock import MockLLMProvider
from flowchain.llm.provider import LLMError, LLMOptions, LLMProvider

__all__ = [
    "LLMError",
    "LLMOptions",
    "LLMProvider",
    "LiteLLMProvider",
    "MockLLMProvider",
]
