"""
Command-line interface for flowchain.

Usage:
    flowchain run workflow.json --input i1="hello"
    flowchain run my-workflow --step
    flowchain validate workflow.json
    flowchain nodes
    flowchain list
    flowchain runs my-workflow
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from flowchain.config import EngineConfig, LLMSettings, validate_llm_settings
from flowchain.graph.errors import GraphValidationError
from flowchain.graph.executor import ExecutionStatus, StepResult, WorkflowEngine
from flowchain.graph.models import WorkflowDefinition
from flowchain.graph.registry import CATEGORY_NAMES
from flowchain.graph.resolver import resolve_execution_order
from flowchain.llm import LiteLLMProvider, MockLLMProvider
from flowchain.nodes import get_node_registry
from flowchain.observability import configure_logging
from flowchain.runtime import RunLogStore
from flowchain.storage import WorkflowStore, load_workflow_file

_LLM_NODE_TYPES = ("llm", "if", "while")


def _load_workflow(ref: str, config: EngineConfig) -> WorkflowDefinition:
    """Resolve ``ref`` as a file path first, then as a stored workflow id."""
    path = Path(ref)
    if path.suffix == ".json" or path.exists():
        return load_workflow_file(path)
    workflow = WorkflowStore(config.workflows_dir).load(ref)
    if workflow is None:
        raise FileNotFoundError(f"No workflow file or stored workflow named '{ref}'")
    return workflow


def _parse_inputs(pairs: list[str]) -> dict[str, str]:
    inputs: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --input '{pair}': expected NODE_ID=VALUE")
        inputs[key] = value
    return inputs


def _uses_llm(workflow: WorkflowDefinition) -> bool:
    for node in workflow.nodes:
        if node.type == "llm":
            return True
        if node.type == "if" and (node.data.get("conditionType") or "llm") == "llm":
            return True
        if node.type == "while" and node.data.get("conditionType") == "llm":
            return True
    return False


def _format_value(value) -> str:
    if isinstance(value, str):
        return value
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        value = to_dict()
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _print_step(step: StepResult, workflow: WorkflowDefinition) -> None:
    if step.status != ExecutionStatus.RUNNING:
        return
    node = workflow.get_node(step.current_node_id or "")
    label = node.label if node else step.current_node_id
    print(f"[{step.step}/{step.total}] {label}")
    print(f"  {_format_value(step.result)[:200]}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_run(args: argparse.Namespace) -> int:
    config = EngineConfig.load()
    try:
        workflow = _load_workflow(args.workflow, config)
        inputs = _parse_inputs(args.input) if args.input else None
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    settings = LLMSettings.load()
    if args.mock is not None:
        llm = MockLLMProvider([args.mock])
    else:
        if _uses_llm(workflow):
            for problem in validate_llm_settings(settings):
                print(f"Warning: {problem}", file=sys.stderr)
        llm = LiteLLMProvider(settings)

    run_store = None if args.no_history else RunLogStore(config.runs_dir)
    engine = WorkflowEngine(
        registry=get_node_registry(),
        llm=llm,
        llm_settings=settings,
        run_store=run_store,
        config=config,
    )

    if inputs is not None:
        seeded = workflow.initial_inputs()
        seeded.update(inputs)
        inputs = seeded
        for node in workflow.nodes:
            if node.type == "input" and node.id in inputs:
                node.data["value"] = inputs[node.id]

    async def _drive() -> StepResult:
        run = engine.start_execution(
            workflow.nodes, workflow.connections, inputs, workflow_id=workflow.id
        )
        while True:
            step = await run.next()
            _print_step(step, workflow)
            if step.done:
                break
            if args.step:
                await asyncio.to_thread(input, "Press Enter for the next node (Ctrl-C to stop)... ")
        if run.run_logger is not None:
            await run.run_logger.flush()

        for node in workflow.nodes:
            if node.type == "output" and node.id in run.node_outputs:
                print(f"\n=== {node.label} ===")
                print(_format_value(run.node_outputs[node.id]))
        return step

    try:
        result = asyncio.run(_drive())
    except GraphValidationError as e:
        print(f"Invalid workflow: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nStopped.", file=sys.stderr)
        return 130

    if result.status == ExecutionStatus.ERROR:
        print(f"\nRun failed at node '{result.node_id}': {result.error}", file=sys.stderr)
        return 1
    print(f"\nRun {result.status.value}.")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    config = EngineConfig.load()
    registry = get_node_registry()
    try:
        workflow = _load_workflow(args.workflow, config)
        order = resolve_execution_order(workflow.nodes, workflow.connections)
    except (FileNotFoundError, ValueError) as e:
        print(f"Invalid: {e}", file=sys.stderr)
        return 1

    unknown = [n for n in workflow.nodes if n.type not in registry]
    if unknown:
        for node in unknown:
            print(f"Invalid: node '{node.id}' has unknown type '{node.type}'", file=sys.stderr)
        return 1

    print(f"Workflow '{workflow.name}' is valid ({len(workflow.nodes)} nodes).")
    print("Execution order:")
    for i, node_id in enumerate(order, 1):
        node = workflow.get_node(node_id)
        print(f"  {i}. {node.label} ({node.type})")
    return 0


def cmd_nodes(args: argparse.Namespace) -> int:
    registry = get_node_registry()
    for category, definitions in registry.by_category().items():
        print(CATEGORY_NAMES.get(category, category))
        for node_type, definition in definitions.items():
            ports = f"{', '.join(definition.inputs) or '-'} -> {', '.join(definition.outputs) or '-'}"
            print(f"  {definition.icon} {node_type:<14} {ports}")
            if args.verbose and definition.description:
                print(f"      {definition.description}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    store = WorkflowStore(EngineConfig.load().workflows_dir)
    workflows = store.list_all()
    if not workflows:
        print(f"No workflows in {store.storage_dir}")
        return 0
    for workflow in workflows:
        print(f"{workflow.id:<16} {workflow.name}  ({len(workflow.nodes)} nodes, updated {workflow.updated_at})")
    return 0


def cmd_runs(args: argparse.Namespace) -> int:
    store = RunLogStore(EngineConfig.load().runs_dir)

    async def _show() -> int:
        runs = await store.list_runs(args.workflow_id, limit=args.limit)
        if not runs:
            print("No runs recorded.")
            return 0
        for run in runs:
            line = f"{run.id}  {run.status:<9} started {run.started_at}"
            if run.error:
                line += f"  error at {run.failed_node_id}: {run.error}"
            print(line)
            if args.verbose:
                for entry in await store.get_logs_for_run(run.id):
                    print(f"    {entry.node_id:<16} {entry.status:<7} {entry.processing_time_ms}ms")
        return 0

    return asyncio.run(_show())


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Execute a workflow")
    run_parser.add_argument("workflow", help="Path to a workflow JSON file or a stored workflow id")
    run_parser.add_argument(
        "--input",
        "-i",
        action="append",
        metavar="NODE_ID=VALUE",
        help="Value for an input node (repeatable)",
    )
    run_parser.add_argument("--step", action="store_true", help="Pause after every node")
    run_parser.add_argument(
        "--mock",
        metavar="RESPONSE",
        help="Answer every LLM call with RESPONSE instead of calling a provider",
    )
    run_parser.add_argument("--no-history", action="store_true", help="Do not record run history")
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Check a workflow and print its order")
    validate_parser.add_argument("workflow", help="Path to a workflow JSON file or a stored workflow id")
    validate_parser.set_defaults(func=cmd_validate)

    nodes_parser = subparsers.add_parser("nodes", help="List available node types")
    nodes_parser.add_argument("--verbose", "-v", action="store_true", help="Show descriptions")
    nodes_parser.set_defaults(func=cmd_nodes)

    list_parser = subparsers.add_parser("list", help="List stored workflows")
    list_parser.set_defaults(func=cmd_list)

    runs_parser = subparsers.add_parser("runs", help="Show run history")
    runs_parser.add_argument("workflow_id", nargs="?", default=None, help="Only runs of this workflow")
    runs_parser.add_argument("--limit", type=int, default=20, help="Maximum runs to show")
    runs_parser.add_argument("--verbose", "-v", action="store_true", help="Show node logs")
    runs_parser.set_defaults(func=cmd_runs)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowchain",
        description="flowchain - run LLM node workflows",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (DEBUG, INFO, ...)")
    parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "human", "json"],
        help="Log output format",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
