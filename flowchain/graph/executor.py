"""
Workflow Executor - steps a workflow one node at a time.

The executor:
1. Validates the graph and resolves a topological order up front
2. Seeds an ExecutionContext from the caller's initial inputs
3. On each ``next()`` call, builds one node's inputs, awaits its execute
   function, and records the result
4. Reports progress as ``StepResult`` values, ending in completed / error /
   stopped

A run moves Idle → Running → (Completed | Error | Stopped). Stopping is
cooperative: a node call already in flight finishes on its own and the run
halts before the next node. Cancelling a pending ``next()`` ends the run as
stopped at the cancelled node.

Example:
    engine = WorkflowEngine(llm=LiteLLMProvider())
    run = engine.start_execution(nodes, connections, {"i1": "hello"})

    step = await run.next()
    while not step.done:
        step = await run.next()

    print(step.status, run.node_outputs)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import traceback
import uuid
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from flowchain.config import EngineConfig, LLMSettings
from flowchain.graph.context import ExecutionContext, LogEntry, LogSink
from flowchain.graph.errors import EngineBusyError, UnknownNodeTypeError
from flowchain.graph.models import Connection, Node
from flowchain.graph.registry import NodeRegistry
from flowchain.graph.resolver import resolve_execution_order
from flowchain.graph.router import build_node_inputs
from flowchain.llm.provider import LLMProvider
from flowchain.observability import set_trace_context
from flowchain.runtime.run_log_store import RunStore
from flowchain.runtime.run_logger import RunLogger

logger = logging.getLogger(__name__)


class ExecutionStatus(StrEnum):
    """Lifecycle state of a run; also the tag on every ``StepResult``."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.ERROR, ExecutionStatus.STOPPED}
)


@dataclass
class StepResult:
    """One value of the step protocol.

    ``running`` results carry the node that just executed and its result;
    terminal results carry the final variables, and for ``error`` the failing
    node id and message.
    """

    status: ExecutionStatus
    current_node_id: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    exception: BaseException | None = None
    node_id: str | None = None
    step: int = 0
    total: int = 0

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_STATUSES


ProgressCallback = Callable[[StepResult], Awaitable[None] | None]


def _preview(value: Any, limit: int = 200) -> str:
    text = str(value)
    return text if len(text) <= limit else text[:limit] + "..."


class WorkflowRun:
    """A single run of a workflow with a pull-based ``next()`` protocol.

    One ``WorkflowRun`` owns one ``ExecutionContext``; nothing is shared
    between runs. ``next()`` must not be called concurrently with itself.
    """

    def __init__(
        self,
        nodes: Sequence[Node],
        connections: Sequence[Connection],
        registry: NodeRegistry,
        initial_inputs: Mapping[str, Any] | None = None,
        llm: LLMProvider | None = None,
        llm_settings: LLMSettings | None = None,
        config: EngineConfig | None = None,
        run_logger: RunLogger | None = None,
        log_sink: LogSink | None = None,
        workflow_id: str = "",
    ):
        self.run_id = uuid.uuid4().hex
        self.workflow_id = workflow_id
        self.nodes = list(nodes)
        self.connections = list(connections)
        self.registry = registry
        self.initial_inputs = dict(initial_inputs or {})
        self.run_logger = run_logger
        self.config = config or EngineConfig()
        self.status = ExecutionStatus.IDLE
        self.order: list[str] = []

        self.context = ExecutionContext(
            variables=self.initial_inputs,
            llm=llm,
            llm_settings=llm_settings,
            max_log_entries=self.config.max_log_entries,
            debug=self.config.debug,
            log_sink=log_sink,
        )

        self._nodes_by_id = {node.id: node for node in self.nodes}
        self._cursor = 0
        self._stop_requested = False
        self._in_flight = False
        self._terminal: StepResult | None = None
        self._run_logged = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> WorkflowRun:
        """Validate the graph, resolve the order, and enter ``running``.

        Raises:
            GraphValidationError: invalid connection, duplicate id, unknown
                node type, or cycle. No node has executed.
        """
        if self.status != ExecutionStatus.IDLE:
            raise RuntimeError(f"Run {self.run_id} was already started")

        set_trace_context(run_id=self.run_id, workflow_id=self.workflow_id, node_id=None)

        self.order = resolve_execution_order(self.nodes, self.connections)
        for node in self.nodes:
            if self.registry.lookup(node.type) is None:
                raise UnknownNodeTypeError(node.id, node.type)

        self.status = ExecutionStatus.RUNNING
        self.context.add_log(
            "info",
            f"🚀 Ready to execute {len(self.nodes)} nodes, {len(self.connections)} connections",
            data={
                "node_count": len(self.nodes),
                "connection_count": len(self.connections),
                "order": list(self.order),
            },
        )
        return self

    def stop(self) -> None:
        """Request a cooperative stop; the next ``next()`` returns ``stopped``."""
        if self.status in TERMINAL_STATUSES:
            return
        self._stop_requested = True
        self.context.add_log("info", "⏹ Stop requested")
        if self.status == ExecutionStatus.IDLE:
            self._finish(ExecutionStatus.STOPPED)

    async def next(self) -> StepResult:
        """Advance by one node, or report the terminal state."""
        if self._terminal is not None:
            return self._terminal
        if self.status == ExecutionStatus.IDLE:
            raise RuntimeError("Run has not been started; call start() first")
        if self._in_flight:
            raise RuntimeError("next() called while a step is still in flight")

        self._ensure_run_logged()

        if self._stop_requested:
            return self._finish(ExecutionStatus.STOPPED)
        if self._cursor >= len(self.order):
            return self._finish(ExecutionStatus.COMPLETED)

        node_id = self.order[self._cursor]
        self._cursor += 1
        node = self._nodes_by_id[node_id]
        definition = self.registry.get(node.type)
        set_trace_context(node_id=node_id)

        inputs = build_node_inputs(
            node, self.connections, self.context, self.registry, self._nodes_by_id
        )
        self.context.add_log(
            "info",
            f"▶ Step {self._cursor}/{len(self.order)}: {node.label} ({node.type})",
            node_id,
            {"inputs": {k: _preview(v) for k, v in inputs.items()}},
        )

        started = time.monotonic()
        self._in_flight = True
        try:
            result = definition.execute(node, inputs, self.context)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            # The node never produced an output, so downstream nodes must not run.
            latency_ms = int((time.monotonic() - started) * 1000)
            self.context.add_log(
                "warning",
                f"⏹ Node '{node.label}' cancelled after {latency_ms}ms",
                node_id,
            )
            if self.run_logger:
                self.run_logger.log_node(
                    node_id=node_id,
                    status="error",
                    inputs=inputs,
                    error="cancelled",
                    processing_time_ms=latency_ms,
                )
            self._finish(ExecutionStatus.STOPPED, node_id=node_id)
            raise
        except Exception as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            self.context.add_log(
                "error",
                f"✗ Node '{node.label}' failed after {latency_ms}ms: {e}",
                node_id,
                {"error": str(e), "error_type": type(e).__name__, "stack": traceback.format_exc()},
            )
            if self.run_logger:
                self.run_logger.log_node(
                    node_id=node_id,
                    status="error",
                    inputs=inputs,
                    error=str(e),
                    processing_time_ms=latency_ms,
                )
            return self._finish(ExecutionStatus.ERROR, exception=e, node_id=node_id)
        finally:
            self._in_flight = False

        latency_ms = int((time.monotonic() - started) * 1000)
        self.context.record_output(node_id, result)
        self.context.add_log(
            "success",
            f"✓ {node.label} completed in {latency_ms}ms",
            node_id,
            {"result": _preview(result)},
        )
        if self.run_logger:
            self.run_logger.log_node(
                node_id=node_id,
                status="success",
                inputs=inputs,
                outputs=result,
                processing_time_ms=latency_ms,
            )

        return StepResult(
            status=ExecutionStatus.RUNNING,
            current_node_id=node_id,
            variables=self.context.snapshot_variables(),
            result=result,
            step=self._cursor,
            total=len(self.order),
        )

    async def run_to_completion(self, on_progress: ProgressCallback | None = None) -> StepResult:
        """Call ``next()`` until the run reaches a terminal state."""
        while True:
            step = await self.next()
            if on_progress is not None:
                outcome = on_progress(step)
                if inspect.isawaitable(outcome):
                    await outcome
            if step.done:
                return step

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def node_outputs(self) -> dict[str, Any]:
        return self.context.node_outputs

    @property
    def variables(self) -> dict[str, Any]:
        return self.context.variables

    @property
    def execution_log(self) -> list[LogEntry]:
        return self.context.get_log()

    @property
    def is_running(self) -> bool:
        return self.status == ExecutionStatus.RUNNING

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_run_logged(self) -> None:
        if self.run_logger and not self._run_logged:
            self._run_logged = True
            self.run_logger.start_run(self.initial_inputs)

    def _finish(
        self,
        status: ExecutionStatus,
        exception: BaseException | None = None,
        node_id: str | None = None,
    ) -> StepResult:
        self.status = status
        error = str(exception) if exception is not None else None
        self._terminal = StepResult(
            status=status,
            variables=self.context.snapshot_variables(),
            error=error,
            exception=exception,
            node_id=node_id,
            step=self._cursor,
            total=len(self.order),
        )

        if status == ExecutionStatus.COMPLETED:
            self.context.add_log("info", f"🏁 Workflow completed ({len(self.order)} nodes)")
        elif status == ExecutionStatus.STOPPED:
            self.context.add_log("info", f"⏹ Workflow stopped after {self._cursor} node(s)")
        else:
            self.context.add_log("error", f"Workflow failed at node '{node_id}': {error}", node_id)

        if self.run_logger:
            self.run_logger.end_run(status.value, error=error, failed_node_id=node_id)
        set_trace_context(node_id=None)
        return self._terminal


def _coerce_nodes(nodes: Sequence[Node | Mapping[str, Any]]) -> list[Node]:
    return [n if isinstance(n, Node) else Node.model_validate(n) for n in nodes]


def _coerce_connections(connections: Sequence[Connection | Mapping[str, Any]]) -> list[Connection]:
    return [c if isinstance(c, Connection) else Connection.model_validate(c) for c in connections]


class WorkflowEngine:
    """
    Starts runs and admits at most one active run at a time.

    Each engine is an ordinary object; create several if independent runs
    must coexist. The busy check reads the current run's status, so a run
    that finished, failed, or was stopped frees the engine.
    """

    def __init__(
        self,
        registry: NodeRegistry | None = None,
        llm: LLMProvider | None = None,
        llm_settings: LLMSettings | None = None,
        run_store: RunStore | None = None,
        config: EngineConfig | None = None,
        log_sink: LogSink | None = None,
    ):
        if registry is None:
            from flowchain.nodes import get_node_registry

            registry = get_node_registry()
        self.registry = registry
        self.llm = llm
        self.llm_settings = llm_settings or LLMSettings()
        self.run_store = run_store
        self.config = config or EngineConfig()
        self.log_sink = log_sink
        self._current: WorkflowRun | None = None

    @property
    def current_run(self) -> WorkflowRun | None:
        return self._current

    @property
    def is_running(self) -> bool:
        return self._current is not None and self._current.is_running

    def start_execution(
        self,
        nodes: Sequence[Node | Mapping[str, Any]],
        connections: Sequence[Connection | Mapping[str, Any]],
        initial_inputs: Mapping[str, Any] | None = None,
        registry: NodeRegistry | None = None,
        workflow_id: str = "",
    ) -> WorkflowRun:
        """Validate the graph and return a started run.

        ``initial_inputs`` of ``None`` seeds variables from the input nodes'
        values, the way the editor does.

        Raises:
            EngineBusyError: the previous run is still running
            GraphValidationError: the graph cannot be executed
        """
        if self.is_running:
            raise EngineBusyError()

        node_list = _coerce_nodes(nodes)
        connection_list = _coerce_connections(connections)
        if initial_inputs is None:
            initial_inputs = {
                n.id: n.data.get("value", "") for n in node_list if n.type == "input"
            }

        run_logger = None
        if self.run_store is not None:
            run_logger = RunLogger(self.run_store, workflow_id=workflow_id)

        run = WorkflowRun(
            nodes=node_list,
            connections=connection_list,
            registry=registry or self.registry,
            initial_inputs=initial_inputs,
            llm=self.llm,
            llm_settings=self.llm_settings,
            config=self.config,
            run_logger=run_logger,
            log_sink=self.log_sink,
            workflow_id=workflow_id,
        )
        run.start()
        self._current = run
        logger.info(f"Run {run.run_id} started for workflow '{workflow_id or 'unsaved'}'")
        return run

    def stop(self) -> None:
        if self._current is not None:
            self._current.stop()

    async def execute_workflow(
        self,
        nodes: Sequence[Node | Mapping[str, Any]],
        connections: Sequence[Connection | Mapping[str, Any]],
        initial_inputs: Mapping[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
        workflow_id: str = "",
    ) -> StepResult:
        """Start a run and drive it to its terminal state."""
        run = self.start_execution(nodes, connections, initial_inputs, workflow_id=workflow_id)
        result = await run.run_to_completion(on_progress)
        if run.run_logger is not None:
            await run.run_logger.flush()
        return result
