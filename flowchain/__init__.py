"""
flowchain - a step-wise execution engine for LLM node workflows.

A workflow is a set of typed nodes (input, llm, if, while, ...) joined by
port-to-port connections. The engine orders the nodes topologically and runs
them one at a time, exposing each step to the caller.

Example:
    from flowchain import WorkflowEngine
    from flowchain.llm import LiteLLMProvider

    engine = WorkflowEngine(llm=LiteLLMProvider())
    result = await engine.execute_workflow(nodes, connections)
"""

from flowchain.config import EngineConfig, LLMSettings
from flowchain.graph import (
    BranchOutput,
    Connection,
    CycleError,
    EngineBusyError,
    ExecutionContext,
    ExecutionStatus,
    FlowchainError,
    GraphValidationError,
    Node,
    NodeExecutionError,
    NodeRegistry,
    StepResult,
    WorkflowDefinition,
    WorkflowEngine,
    WorkflowRun,
    create_node_definition,
)
from flowchain.nodes import create_default_registry, get_node_registry

__version__ = "0.1.0"

__all__ = [
    "BranchOutput",
    "Connection",
    "CycleError",
    "EngineBusyError",
    "EngineConfig",
    "ExecutionContext",
    "ExecutionStatus",
    "FlowchainError",
    "GraphValidationError",
    "LLMSettings",
    "Node",
    "NodeExecutionError",
    "NodeRegistry",
    "StepResult",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowRun",
    "create_default_registry",
    "create_node_definition",
    "get_node_registry",
]
