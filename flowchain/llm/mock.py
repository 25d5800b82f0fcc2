"""Scripted LLM provider for tests and offline runs."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

from flowchain.llm.provider import LLMError, LLMOptions, LLMProvider


@dataclass
class RecordedCall:
    prompt: str
    system_prompt: str | None
    options: LLMOptions | None


class MockLLMProvider(LLMProvider):
    """
    Returns canned responses and records every call.

    ``responses`` is consumed in order; once exhausted the last response is
    repeated. ``responder`` takes precedence and computes a reply per prompt.
    Setting ``error`` makes every call fail with ``LLMError``.
    """

    def __init__(
        self,
        responses: Iterable[str] | None = None,
        responder: Callable[[str], str] | None = None,
        error: str | None = None,
    ):
        self._responses = list(responses or ["mock response"])
        self._responder = responder
        self._error = error
        self.calls: list[RecordedCall] = []

    async def send_message(
        self,
        prompt: str,
        system_prompt: str | None = None,
        options: LLMOptions | None = None,
    ) -> str:
        self.calls.append(RecordedCall(prompt, system_prompt, options))
        if self._error is not None:
            raise LLMError(self._error)
        if self._responder is not None:
            return self._responder(prompt)
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]
