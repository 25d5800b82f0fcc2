"""
Input Router - assembles the inputs of a node from upstream outputs.

For every connection that targets the node:
1. Skip it if the source has no recorded output yet.
2. Name the input port: the definition's declared input at the target port
   index, else the connection's explicit port label, else ``input<index>``.
3. Unwrap branch outputs by source port; an untaken branch delivers nothing.
4. When two connections feed the same port, warn and keep the later value.

``llm`` nodes additionally receive their single input under the canonical
``input`` key when it arrived under another name.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from flowchain.graph.conditions import BranchOutput
from flowchain.graph.context import ExecutionContext
from flowchain.graph.models import Connection, Node
from flowchain.graph.registry import NodeRegistry

CANONICAL_INPUT = "input"
_NORMALIZED_TYPES = frozenset({"llm"})


def resolve_port_name(connection: Connection, target_type: str, registry: NodeRegistry) -> str:
    port_index = connection.target.port_index
    definition = registry.lookup(target_type)
    if definition is not None:
        declared = definition.input_name(port_index)
        if declared:
            return declared
    if connection.target.port:
        return connection.target.port
    return f"input{port_index}"


def build_node_inputs(
    node: Node,
    connections: Sequence[Connection],
    context: ExecutionContext,
    registry: NodeRegistry,
    nodes_by_id: Mapping[str, Node] | None = None,
) -> dict[str, Any]:
    """Return the port-name → value mapping for ``node``'s execute call."""
    inputs: dict[str, Any] = {}
    writers: dict[str, str] = {}

    for conn in connections:
        if conn.target.node_id != node.id:
            continue

        source_id = conn.source.node_id
        if source_id not in context.node_outputs:
            continue
        value = context.node_outputs[source_id]

        if isinstance(value, BranchOutput):
            value = value.for_port(conn.source.port_index)
            if value is None:
                continue

        port_name = resolve_port_name(conn, node.type, registry)
        if port_name in inputs:
            source_label = source_id
            if nodes_by_id and source_id in nodes_by_id:
                source_label = nodes_by_id[source_id].label
            context.add_log(
                "warning",
                f"Input '{port_name}' has multiple writers; "
                f"'{source_label}' overrides '{writers[port_name]}'",
                node.id,
                {"port": port_name, "previous": writers[port_name], "current": source_id},
            )
        inputs[port_name] = value
        writers[port_name] = source_id

    if node.type in _NORMALIZED_TYPES and len(inputs) == 1 and CANONICAL_INPUT not in inputs:
        ((name, value),) = inputs.items()
        inputs = {CANONICAL_INPUT: value}
        context.add_log("debug", f"Normalized input '{name}' to '{CANONICAL_INPUT}'", node.id)

    return inputs
