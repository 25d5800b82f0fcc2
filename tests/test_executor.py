"""
Tests for the step executor and the engine that starts runs.
Covers the step protocol, branching, loops, stop, failure, and busy handling.
"""

import asyncio

import pytest

from flowchain.graph.errors import CycleError, EngineBusyError, UnknownNodeTypeError
from flowchain.graph.executor import ExecutionStatus, WorkflowEngine, WorkflowRun
from flowchain.graph.models import Connection, Node
from flowchain.graph.registry import NodeRegistry, create_node_definition
from flowchain.llm import MockLLMProvider
from flowchain.nodes import register_builtin_nodes
from flowchain.observability import get_trace_context


def _recording_registry(calls: list[str], **extra) -> NodeRegistry:
    """Built-in nodes plus a ``record`` type that notes every execution."""
    registry = register_builtin_nodes(NodeRegistry())

    async def record(node, inputs, context):
        calls.append(node.id)
        return node.data.get("value", node.id)

    registry.register(
        "record",
        create_node_definition("Record", "•", "cyan", ["input"], ["output"], {}, record),
    )
    for node_type, execute in extra.items():
        registry.register(
            node_type,
            create_node_definition(node_type, "•", "cyan", ["input"], ["output"], {}, execute),
        )
    return registry.freeze()


def _hello_workflow():
    nodes = [
        Node(id="i1", type="input", data={"value": "hello"}),
        Node(id="o1", type="output", data={"format": "text"}),
    ]
    connections = [Connection.between("i1", "o1")]
    return nodes, connections


# ---- Dummy run stores ----
class FailingStore:
    async def create_run(self, workflow_id, input_data):
        raise OSError("disk unavailable")

    async def update_run(self, run_id, **changes):
        raise OSError("disk unavailable")

    async def add_node_log(self, run_id, node_id, status, **fields):
        raise OSError("disk unavailable")


class FlakyStore:
    """Creates runs but fails every node log."""

    def __init__(self):
        self.updates = []

    async def create_run(self, workflow_id, input_data):
        return "run-1"

    async def update_run(self, run_id, **changes):
        self.updates.append((run_id, changes))

    async def add_node_log(self, run_id, node_id, status, **fields):
        raise RuntimeError("log table locked")


class TestStepProtocol:
    @pytest.mark.asyncio
    async def test_input_flows_to_output(self, registry):
        engine = WorkflowEngine(registry=registry)
        nodes, connections = _hello_workflow()

        result = await engine.execute_workflow(nodes, connections, {"i1": "hello"})

        assert result.status == ExecutionStatus.COMPLETED
        assert engine.current_run.node_outputs == {"i1": "hello", "o1": "hello"}
        assert result.variables["i1"] == "hello"

    @pytest.mark.asyncio
    async def test_each_next_executes_one_node(self, registry):
        engine = WorkflowEngine(registry=registry)
        nodes, connections = _hello_workflow()
        run = engine.start_execution(nodes, connections, {})

        first = await run.next()
        assert first.status == ExecutionStatus.RUNNING
        assert first.current_node_id == "i1"
        assert first.result == "hello"
        assert run.node_outputs == {"i1": "hello"}

        second = await run.next()
        assert second.current_node_id == "o1"
        assert (second.step, second.total) == (2, 2)

        final = await run.next()
        assert final.status == ExecutionStatus.COMPLETED
        assert final.done
        assert final.variables == {"i1": "hello"}

    @pytest.mark.asyncio
    async def test_terminal_result_repeats(self, registry):
        run = WorkflowEngine(registry=registry).start_execution(*_hello_workflow())
        await run.run_to_completion()

        again = await run.next()

        assert again.status == ExecutionStatus.COMPLETED
        assert run.node_outputs == {"i1": "hello", "o1": "hello"}

    @pytest.mark.asyncio
    async def test_empty_workflow_completes(self, registry):
        run = WorkflowEngine(registry=registry).start_execution([], [])

        assert (await run.next()).status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_none_initial_inputs_seed_from_input_nodes(self, registry):
        run = WorkflowEngine(registry=registry).start_execution(*_hello_workflow(), None)

        assert run.variables == {"i1": "hello"}

    @pytest.mark.asyncio
    async def test_accepts_editor_json(self, registry):
        nodes = [
            {"id": "i1", "type": "input", "data": {"value": "from json"}},
            {"id": "o1", "type": "output", "data": {}},
        ]
        connections = [
            {"id": "c1", "from": {"nodeId": "i1", "portIndex": 0}, "to": {"nodeId": "o1", "portIndex": 0}}
        ]

        result = await WorkflowEngine(registry=registry).execute_workflow(nodes, connections)

        assert result.status == ExecutionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_ready_event_is_logged(self, registry):
        run = WorkflowEngine(registry=registry).start_execution(*_hello_workflow())

        ready = run.execution_log[0]
        assert ready.data["node_count"] == 2
        assert ready.data["connection_count"] == 1
        assert ready.data["order"] == ["i1", "o1"]

    @pytest.mark.asyncio
    async def test_sync_execute_functions_are_supported(self):
        def shout(node, inputs, context):
            return str(inputs.get("input", "")).upper()

        registry = _recording_registry([], shout=shout)
        nodes = [Node(id="i1", type="input", data={"value": "hi"}), Node(id="s", type="shout")]

        engine = WorkflowEngine(registry=registry)
        result = await engine.execute_workflow(nodes, [Connection.between("i1", "s")])

        assert result.status == ExecutionStatus.COMPLETED
        assert result.variables == {"i1": "hi"}
        assert engine.current_run.node_outputs["s"] == "HI"

    @pytest.mark.asyncio
    async def test_on_progress_sees_every_step(self, registry):
        seen = []

        async def on_progress(step):
            seen.append(step.status)

        await WorkflowEngine(registry=registry).execute_workflow(
            *_hello_workflow(), on_progress=on_progress
        )

        assert seen == [
            ExecutionStatus.RUNNING,
            ExecutionStatus.RUNNING,
            ExecutionStatus.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_trace_context_carries_run_id(self, registry):
        run = WorkflowEngine(registry=registry).start_execution(
            *_hello_workflow(), workflow_id="wf-1"
        )
        await run.next()

        context = get_trace_context()
        assert context["run_id"] == run.run_id
        assert context["workflow_id"] == "wf-1"
        assert context["node_id"] == "i1"


class TestValidation:
    def test_cycle_rejected_before_any_node_runs(self):
        calls = []
        engine = WorkflowEngine(registry=_recording_registry(calls))
        nodes = [Node(id="a", type="record"), Node(id="b", type="record")]
        connections = [Connection.between("a", "b"), Connection.between("b", "a")]

        with pytest.raises(CycleError) as exc_info:
            engine.start_execution(nodes, connections)

        assert set(exc_info.value.node_ids) == {"a", "b"}
        assert calls == []
        assert engine.current_run is None

    def test_unknown_node_type(self, registry):
        with pytest.raises(UnknownNodeTypeError, match="mystery"):
            WorkflowEngine(registry=registry).start_execution([Node(id="x", type="mystery")], [])

    def test_next_before_start(self, registry):
        run = WorkflowRun([], [], registry)

        with pytest.raises(RuntimeError, match="not been started"):
            asyncio.run(run.next())


class TestBranching:
    def _branch_workflow(self, if_data):
        nodes = [
            Node(id="i1", type="input", data={"value": "5"}),
            Node(id="cond", type="if", data=if_data),
            Node(id="yes", type="output"),
            Node(id="no", type="output"),
        ]
        connections = [
            Connection.between("i1", "cond"),
            Connection.between("cond", "yes", source_port=0),
            Connection.between("cond", "no", source_port=1),
        ]
        return nodes, connections

    @pytest.mark.asyncio
    async def test_true_branch_receives_value_false_branch_nothing(self, registry):
        engine = WorkflowEngine(registry=registry)
        nodes, connections = self._branch_workflow(
            {"conditionType": "variable", "variable": "i1", "operator": ">", "value": "3"}
        )

        await engine.execute_workflow(nodes, connections)

        outputs = engine.current_run.node_outputs
        assert outputs["cond"].condition is True
        assert outputs["yes"] == "5"
        assert outputs["no"] == ""

    @pytest.mark.asyncio
    async def test_false_branch(self, registry):
        engine = WorkflowEngine(registry=registry)
        nodes, connections = self._branch_workflow(
            {"conditionType": "variable", "variable": "i1", "operator": "<", "value": "3"}
        )

        await engine.execute_workflow(nodes, connections)

        outputs = engine.current_run.node_outputs
        assert outputs["yes"] == ""
        assert outputs["no"] == "5"

    @pytest.mark.asyncio
    async def test_llm_condition(self, registry):
        llm = MockLLMProvider(["false"])
        engine = WorkflowEngine(registry=registry, llm=llm)
        nodes, connections = self._branch_workflow(
            {"conditionType": "llm", "condition": "Is the number large?"}
        )

        await engine.execute_workflow(nodes, connections)

        outputs = engine.current_run.node_outputs
        assert outputs["no"] == "5"
        assert "Is the number large?" in llm.calls[0].prompt


class TestLoops:
    @pytest.mark.asyncio
    async def test_counter_loop_runs_until_condition_fails(self, registry):
        engine = WorkflowEngine(registry=registry)
        nodes = [
            Node(
                id="loop",
                type="while",
                data={"conditionType": "variable", "variable": "counter", "operator": "<", "value": "3"},
            )
        ]

        result = await engine.execute_workflow(nodes, [], {})

        output = engine.current_run.node_outputs["loop"]
        assert output["iterations"] == 3
        assert [r["iteration"] for r in output["results"]] == [0, 1, 2]
        assert result.variables["counter"] == 3

    @pytest.mark.asyncio
    async def test_max_iterations_caps_loop_without_error(self, registry):
        engine = WorkflowEngine(registry=registry)
        nodes = [
            Node(
                id="loop",
                type="while",
                data={"variable": "counter", "operator": "<", "value": "1000", "maxIterations": 5},
            )
        ]

        result = await engine.execute_workflow(nodes, [], {})

        assert result.status == ExecutionStatus.COMPLETED
        assert engine.current_run.node_outputs["loop"]["iterations"] == 5


class TestStopAndFailure:
    @pytest.mark.asyncio
    async def test_stop_between_steps(self):
        calls = []
        engine = WorkflowEngine(registry=_recording_registry(calls))
        nodes = [Node(id=n, type="record") for n in ("a", "b", "c")]
        run = engine.start_execution(nodes, [Connection.between("a", "b"), Connection.between("b", "c")])

        await run.next()
        run.stop()
        stopped = await run.next()

        assert stopped.status == ExecutionStatus.STOPPED
        assert calls == ["a"]
        assert run.node_outputs == {"a": "a"}
        assert (await run.next()).status == ExecutionStatus.STOPPED
        assert not engine.is_running

    @pytest.mark.asyncio
    async def test_stop_during_in_flight_node(self):
        calls = []
        gate = asyncio.Event()

        async def slow(node, inputs, context):
            await gate.wait()
            return "done"

        engine = WorkflowEngine(registry=_recording_registry(calls, slow=slow))
        nodes = [Node(id="s", type="slow"), Node(id="after", type="record")]
        run = engine.start_execution(nodes, [Connection.between("s", "after")])

        pending = asyncio.create_task(run.next())
        await asyncio.sleep(0)
        run.stop()
        gate.set()
        step = await pending

        assert step.status == ExecutionStatus.RUNNING
        assert step.result == "done"
        assert (await run.next()).status == ExecutionStatus.STOPPED
        assert calls == []

    @pytest.mark.asyncio
    async def test_cancelled_step_ends_run(self):
        calls = []

        async def hang(node, inputs, context):
            await asyncio.Event().wait()

        engine = WorkflowEngine(registry=_recording_registry(calls, hang=hang))
        nodes = [Node(id="s", type="hang"), Node(id="after", type="record")]
        run = engine.start_execution(nodes, [Connection.between("s", "after")])

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(run.next(), timeout=0.05)

        assert run.status == ExecutionStatus.STOPPED
        assert not engine.is_running
        step = await run.next()
        assert step.status == ExecutionStatus.STOPPED
        assert step.node_id == "s"
        assert calls == []
        assert run.node_outputs == {}

    @pytest.mark.asyncio
    async def test_node_error_ends_run(self, registry):
        llm = MockLLMProvider(error="model overloaded")
        engine = WorkflowEngine(registry=registry, llm=llm)
        nodes = [
            Node(id="i1", type="input", data={"value": "hi"}),
            Node(id="l1", type="llm"),
            Node(id="o1", type="output"),
        ]
        connections = [Connection.between("i1", "l1"), Connection.between("l1", "o1")]
        run = engine.start_execution(nodes, connections)

        await run.next()
        failed = await run.next()

        assert failed.status == ExecutionStatus.ERROR
        assert failed.node_id == "l1"
        assert "model overloaded" in failed.error
        assert failed.exception is not None
        assert "o1" not in run.node_outputs
        assert (await run.next()).status == ExecutionStatus.ERROR
        assert "o1" not in run.node_outputs

        error_entries = [e for e in run.execution_log if e.level == "error"]
        assert error_entries[0].node_id == "l1"
        assert "stack" in error_entries[0].data


class TestEngineBusy:
    @pytest.mark.asyncio
    async def test_second_start_while_running_rejected(self, registry):
        engine = WorkflowEngine(registry=registry)
        engine.start_execution(*_hello_workflow())

        with pytest.raises(EngineBusyError, match="already running"):
            engine.start_execution(*_hello_workflow())

    @pytest.mark.asyncio
    async def test_engine_free_after_completion(self, registry):
        engine = WorkflowEngine(registry=registry)
        first = engine.start_execution(*_hello_workflow())
        await first.run_to_completion()

        second = engine.start_execution(*_hello_workflow())

        assert second is not first
        assert engine.current_run is second

    @pytest.mark.asyncio
    async def test_engine_free_after_stop(self, registry):
        engine = WorkflowEngine(registry=registry)
        engine.start_execution(*_hello_workflow())
        engine.stop()
        await engine.current_run.next()

        engine.start_execution(*_hello_workflow())

    @pytest.mark.asyncio
    async def test_separate_engines_run_independently(self, registry):
        one = WorkflowEngine(registry=registry)
        two = WorkflowEngine(registry=registry)
        run_one = one.start_execution(*_hello_workflow())
        run_two = two.start_execution(*_hello_workflow())

        await run_one.run_to_completion()
        await run_two.run_to_completion()

        assert run_one.context is not run_two.context


class TestRunHistory:
    @pytest.mark.asyncio
    async def test_failing_store_does_not_fail_run(self, registry):
        engine = WorkflowEngine(registry=registry, run_store=FailingStore())

        result = await engine.execute_workflow(*_hello_workflow())

        assert result.status == ExecutionStatus.COMPLETED
        assert engine.current_run.node_outputs["o1"] == "hello"

    @pytest.mark.asyncio
    async def test_failing_node_logs_do_not_block_final_update(self, registry):
        store = FlakyStore()
        engine = WorkflowEngine(registry=registry, run_store=store)

        result = await engine.execute_workflow(*_hello_workflow(), workflow_id="wf-1")

        assert result.status == ExecutionStatus.COMPLETED
        assert store.updates == [("run-1", {"status": "completed"})]
