"""Exception hierarchy for the workflow engine.

Graph validity errors are raised synchronously by ``start_execution`` before
any node runs. Node execution errors terminate a run in the ``error`` state
and are reported through the step protocol rather than raised to the caller.
"""

from __future__ import annotations


class FlowchainError(Exception):
    """Base class for every error raised by flowchain."""


class RegistryError(FlowchainError):
    """A node definition is malformed or the registry is read-only."""


class GraphValidationError(FlowchainError, ValueError):
    """The workflow graph cannot be executed."""


class DuplicateNodeError(GraphValidationError):
    """Two nodes share the same id."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Duplicate node id: '{node_id}'")


class InvalidConnectionError(GraphValidationError):
    """A connection references a node id that is not in the workflow."""

    def __init__(self, connection_id: str | None, missing: list[str]):
        self.connection_id = connection_id
        self.missing = missing
        label = f"Connection '{connection_id}'" if connection_id else "Connection"
        super().__init__(f"{label} references unknown node(s): {', '.join(missing)}")


class CycleError(GraphValidationError):
    """No topological order exists; the listed nodes could not be scheduled."""

    def __init__(self, node_ids: list[str], labels: list[str] | None = None):
        self.node_ids = node_ids
        names = labels or node_ids
        super().__init__(
            "Workflow contains a cycle; unreachable nodes: " + ", ".join(names)
        )


class UnknownNodeTypeError(GraphValidationError):
    """A node's type has no definition in the registry."""

    def __init__(self, node_id: str, node_type: str):
        self.node_id = node_id
        self.node_type = node_type
        super().__init__(f"Unknown node type '{node_type}' for node '{node_id}'")


class NodeExecutionError(FlowchainError):
    """Raised by a node's execute function."""

    def __init__(self, message: str, node_id: str | None = None):
        self.node_id = node_id
        super().__init__(message)


class EngineBusyError(FlowchainError):
    """A run is already in progress on this engine."""

    def __init__(self) -> None:
        super().__init__("Workflow is already running")
