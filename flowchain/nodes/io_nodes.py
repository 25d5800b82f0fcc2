"""
I/O Nodes: workflow entry and exit points.

``input`` publishes a literal (or loaded file content) into the run's
variables; ``output`` formats whatever reaches it for display.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from flowchain.graph.context import ExecutionContext
from flowchain.graph.models import Node
from flowchain.graph.registry import create_node_definition

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("text", "json", "markdown")


async def execute_input_node(node: Node, inputs: dict[str, Any], context: ExecutionContext) -> str:
    if node.data.get("inputType") == "file":
        value = node.data.get("fileContent") or ""
    else:
        value = node.data.get("value") or ""
    context.variables[node.id] = value
    return value


async def execute_output_node(node: Node, inputs: dict[str, Any], context: ExecutionContext) -> Any:
    fmt = node.data.get("format") or "text"
    value = next(iter(inputs.values()), None)
    if value is None:
        value = ""

    if fmt == "json":
        try:
            return json.dumps({"output": value}, indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            logger.warning(f"Output node '{node.id}' value is not JSON serializable; returning as-is")
            return value
    if fmt == "markdown":
        return f"# Output\n\n{value}"
    return value


INPUT_NODE = create_node_definition(
    name="Input",
    icon="📥",
    color_theme="orange",
    inputs=[],
    outputs=["output"],
    default_data={"value": "", "inputType": "text"},
    execute=execute_input_node,
    description="Workflow entry point. Provides text or file content as input.",
    category="input-output",
)

OUTPUT_NODE = create_node_definition(
    name="Output",
    icon="📤",
    color_theme="green",
    inputs=["input"],
    outputs=[],
    default_data={"format": "text", "title": "Result", "result": ""},
    execute=execute_output_node,
    description="Shows the workflow result as text, JSON or Markdown.",
    category="input-output",
)
