"""Text processing nodes."""

from __future__ import annotations

from typing import Any

from flowchain.graph.context import ExecutionContext
from flowchain.graph.models import Node
from flowchain.graph.registry import create_node_definition

COMBINER_INPUTS = ("input1", "input2", "input3", "input4")


async def execute_text_combiner_node(
    node: Node, inputs: dict[str, Any], context: ExecutionContext
) -> str:
    """Concatenate ``input1``..``input4`` in port order, skipping unconnected ports."""
    context.add_log("debug", "🔗 Text combiner received inputs", node.id, {"keys": list(inputs)})

    parts = [str(inputs[name]) for name in COMBINER_INPUTS if inputs.get(name) is not None]
    combined = "".join(parts)

    context.add_log(
        "info",
        "Text combined",
        node.id,
        {"result": combined, "length": len(combined), "parts": len(parts)},
    )
    return combined


TEXT_COMBINER_NODE = create_node_definition(
    name="Text Combiner",
    icon="🔗",
    color_theme="teal",
    inputs=COMBINER_INPUTS,
    outputs=["output"],
    default_data={},
    execute=execute_text_combiner_node,
    description="Combine up to 4 text inputs into a single text output.",
    category="text-processing",
)
