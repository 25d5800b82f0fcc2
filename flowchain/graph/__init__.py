"""Graph structures and the step executor."""

from flowchain.graph.conditions import BranchOutput, compare_values, judge_condition
from flowchain.graph.context import ExecutionContext, LogEntry
from flowchain.graph.errors import (
    CycleError,
    DuplicateNodeError,
    EngineBusyError,
    FlowchainError,
    GraphValidationError,
    InvalidConnectionError,
    NodeExecutionError,
    RegistryError,
    UnknownNodeTypeError,
)
from flowchain.graph.executor import (
    ExecutionStatus,
    StepResult,
    WorkflowEngine,
    WorkflowRun,
)
from flowchain.graph.models import Connection, Node, PortRef, WorkflowDefinition
from flowchain.graph.registry import (
    NodeDefinition,
    NodeExecutor,
    NodeRegistry,
    create_node_definition,
)
from flowchain.graph.resolver import resolve_execution_order
from flowchain.graph.router import build_node_inputs

__all__ = [
    # Models
    "Node",
    "PortRef",
    "Connection",
    "WorkflowDefinition",
    # Registry
    "NodeDefinition",
    "NodeExecutor",
    "NodeRegistry",
    "create_node_definition",
    # Execution
    "ExecutionContext",
    "LogEntry",
    "ExecutionStatus",
    "StepResult",
    "WorkflowEngine",
    "WorkflowRun",
    "resolve_execution_order",
    "build_node_inputs",
    "BranchOutput",
    "compare_values",
    "judge_condition",
    # Errors
    "FlowchainError",
    "GraphValidationError",
    "InvalidConnectionError",
    "CycleError",
    "DuplicateNodeError",
    "UnknownNodeTypeError",
    "NodeExecutionError",
    "EngineBusyError",
    "RegistryError",
]
