"""
Dependency Resolver - computes the execution order of a workflow.

Kahn's algorithm over the connection graph. When several nodes are ready at
once, the one that appears first in the node list runs first, so identical
inputs always produce identical orders. Resolution happens once, up front,
before any node executes.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Sequence

from flowchain.graph.errors import CycleError, DuplicateNodeError, InvalidConnectionError
from flowchain.graph.models import Connection, Node

logger = logging.getLogger(__name__)


def validate_connections(nodes: Sequence[Node], connections: Sequence[Connection]) -> None:
    """Raise if node ids repeat or any connection endpoint is unknown."""
    seen: set[str] = set()
    for node in nodes:
        if node.id in seen:
            raise DuplicateNodeError(node.id)
        seen.add(node.id)

    for conn in connections:
        missing = [
            node_id
            for node_id in (conn.source.node_id, conn.target.node_id)
            if node_id not in seen
        ]
        if missing:
            raise InvalidConnectionError(conn.id, missing)


def resolve_execution_order(
    nodes: Sequence[Node],
    connections: Sequence[Connection],
) -> list[str]:
    """
    Return node ids in a deterministic topological order.

    Raises:
        DuplicateNodeError: two nodes share an id
        InvalidConnectionError: a connection endpoint is not a known node
        CycleError: some nodes can never become ready; they are named in the error
    """
    validate_connections(nodes, connections)

    index = {node.id: i for i, node in enumerate(nodes)}
    successors: dict[str, list[str]] = {node.id: [] for node in nodes}
    in_degree: dict[str, int] = {node.id: 0 for node in nodes}

    for conn in connections:
        successors[conn.source.node_id].append(conn.target.node_id)
        in_degree[conn.target.node_id] += 1

    ready = [index[node_id] for node_id, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    order: list[str] = []
    while ready:
        node_id = nodes[heapq.heappop(ready)].id
        order.append(node_id)
        for neighbor in successors[node_id]:
            in_degree[neighbor] -= 1
            if in_degree[neighbor] == 0:
                heapq.heappush(ready, index[neighbor])

    if len(order) < len(nodes):
        scheduled = set(order)
        stuck = [node for node in nodes if node.id not in scheduled]
        logger.error(f"Cycle detected; {len(stuck)} node(s) cannot be scheduled")
        raise CycleError(
            [node.id for node in stuck],
            [f"{node.label} ({node.id})" if node.label != node.id else node.id for node in stuck],
        )

    return order
