"""
Built-in node types.

``create_default_registry()`` returns a fresh, frozen registry holding every
built-in type; ``get_node_registry()`` returns the shared process-wide one.
Callers that need extra node types build their own ``NodeRegistry``,
register the built-ins plus theirs, and pass it to the engine.
"""

from flowchain.graph.registry import NodeDefinition, NodeRegistry
from flowchain.nodes.io_nodes import INPUT_NODE, OUTPUT_NODE
from flowchain.nodes.llm_node import LLM_NODE
from flowchain.nodes.logic_nodes import IF_NODE, VARIABLE_SET_NODE, WHILE_NODE
from flowchain.nodes.text_nodes import TEXT_COMBINER_NODE

BUILTIN_NODES: dict[str, NodeDefinition] = {
    "input": INPUT_NODE,
    "llm": LLM_NODE,
    "output": OUTPUT_NODE,
    "text_combiner": TEXT_COMBINER_NODE,
    "if": IF_NODE,
    "while": WHILE_NODE,
    "variable_set": VARIABLE_SET_NODE,
}

_default_registry: NodeRegistry | None = None


def register_builtin_nodes(registry: NodeRegistry) -> NodeRegistry:
    for node_type, definition in BUILTIN_NODES.items():
        registry.register(node_type, definition)
    return registry


def create_default_registry() -> NodeRegistry:
    return register_builtin_nodes(NodeRegistry()).freeze()


def get_node_registry() -> NodeRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = create_default_registry()
    return _default_registry


__all__ = [
    "BUILTIN_NODES",
    "create_default_registry",
    "get_node_registry",
    "register_builtin_nodes",
]
