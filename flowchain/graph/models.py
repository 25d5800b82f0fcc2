"""
Workflow data model - nodes, connections, and whole documents.

These are the serializable structures the editor produces. The engine reads
them; it only ever writes transient display fields back into ``Node.data``.

JSON shape::

    {
      "nodes": [{"id": "i1", "type": "input", "data": {"value": "hello"}}],
      "connections": [
        {"from": {"nodeId": "i1", "portIndex": 0},
         "to":   {"nodeId": "o1", "portIndex": 0}}
      ]
    }
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Node(BaseModel):
    """A configured unit of work placed on the canvas."""

    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")

    @property
    def label(self) -> str:
        """Display label, falling back to the node id."""
        return str(self.data.get("label") or self.id)


class PortRef(BaseModel):
    """One end of a connection: a node id plus a port index or label."""

    node_id: str = Field(alias="nodeId")
    port_index: int = Field(default=0, alias="portIndex")
    port: str | None = Field(
        default=None,
        description="Explicit port label, used when the definition declares no port at the index",
    )

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class Connection(BaseModel):
    """A directed edge from a source output port to a target input port."""

    id: str | None = None
    source: PortRef = Field(alias="from")
    target: PortRef = Field(alias="to")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @classmethod
    def between(
        cls,
        source_id: str,
        target_id: str,
        source_port: int = 0,
        target_port: int = 0,
        id: str | None = None,
    ) -> Connection:
        """Shorthand used by tests and the CLI."""
        return cls(
            id=id,
            source=PortRef(node_id=source_id, port_index=source_port),
            target=PortRef(node_id=target_id, port_index=target_port),
        )


def _now() -> str:
    return datetime.now(UTC).isoformat()


class WorkflowDefinition(BaseModel):
    """A complete workflow document as stored by ``WorkflowStore``."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    name: str = "Untitled Workflow"
    description: str = ""
    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    model_config = ConfigDict(extra="allow")

    def touch(self) -> None:
        """Update the ``updated_at`` timestamp."""
        self.updated_at = _now()

    def get_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def initial_inputs(self) -> dict[str, Any]:
        """Seed variables the way the editor does: one entry per input node."""
        return {n.id: n.data.get("value", "") for n in self.nodes if n.type == "input"}
