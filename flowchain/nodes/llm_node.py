"""
LLM Node: sends one prompt to the configured provider and returns its text.

The prompt is the first connected input, or, when the node carries a
``prompt`` template, that template with ``{{name}}`` placeholders filled from
the node's inputs and then the run's variables.

Per-node options (``provider``, ``model``, ``temperature``, ``systemPrompt``)
are layered over the run's LLM settings; key, base URL and token limit always
come from the settings.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from flowchain.graph.context import ExecutionContext
from flowchain.graph.errors import NodeExecutionError
from flowchain.graph.models import Node
from flowchain.graph.registry import create_node_definition
from flowchain.llm.provider import LLMError, LLMOptions

logger = logging.getLogger(__name__)

DEFAULT_NODE_TEMPERATURE = 0.7
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.-]+)\s*\}\}")


def render_prompt(
    template: str,
    inputs: dict[str, Any],
    variables: dict[str, Any],
    node_id: str | None = None,
) -> str:
    """Substitute ``{{name}}`` from ``inputs``, then ``variables``.

    Unknown placeholders are left in place and logged.
    """

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if inputs.get(name) is not None:
            return str(inputs[name])
        if variables.get(name) is not None:
            return str(variables[name])
        logger.warning(
            f"Prompt placeholder '{name}' has no value",
            extra={"node_id": node_id} if node_id else None,
        )
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_substitute, template)


def build_llm_options(node: Node, context: ExecutionContext) -> LLMOptions:
    settings = context.llm_settings
    temperature = node.data.get("temperature")
    return LLMOptions(
        provider=node.data.get("provider") or settings.provider,
        model=node.data.get("model") or settings.model,
        temperature=DEFAULT_NODE_TEMPERATURE if temperature is None else float(temperature),
        api_key=settings.api_key,
        base_url=settings.base_url,
        max_tokens=settings.max_tokens,
    )


async def execute_llm_node(node: Node, inputs: dict[str, Any], context: ExecutionContext) -> str:
    template = node.data.get("prompt")
    if template:
        prompt = render_prompt(str(template), inputs, context.variables, node.id)
    else:
        values = [v for v in inputs.values() if v is not None]
        if not values:
            raise NodeExecutionError("LLM node has no input", node.id)
        prompt = str(values[0])

    if context.llm is None:
        raise NodeExecutionError("No LLM provider configured", node.id)

    options = build_llm_options(node, context)
    system_prompt = node.data.get("systemPrompt") or None

    context.add_log(
        "info",
        f"Sending prompt to LLM: {prompt[:100]}...",
        node.id,
        {
            "prompt": prompt,
            "systemPrompt": system_prompt,
            "provider": options.provider,
            "model": options.model,
            "temperature": options.temperature,
        },
    )

    try:
        response = await context.llm.send_message(prompt, system_prompt, options)
    except LLMError as e:
        raise NodeExecutionError(f"LLM call failed: {e}", node.id) from e

    context.add_log("info", "Received LLM response", node.id, {"response": str(response or "")[:100]})
    return response


LLM_NODE = create_node_definition(
    name="LLM",
    icon="🤖",
    color_theme="blue",
    inputs=["input"],
    outputs=["output"],
    default_data={"temperature": DEFAULT_NODE_TEMPERATURE, "model": "", "systemPrompt": ""},
    execute=execute_llm_node,
    description="Generate text with a language model. Supports a system prompt, "
    "temperature and model selection.",
    category="ai",
)
