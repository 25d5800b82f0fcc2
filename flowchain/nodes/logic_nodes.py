"""
Logic Nodes: branching, bounded looping, and variable assignment.

``if`` routes its input to exactly one of two output ports. ``while`` runs a
bounded loop and reports a snapshot per satisfied iteration. Both evaluate
their condition either against a run variable or by asking the LLM.
"""

from __future__ import annotations

import logging
from typing import Any

from flowchain.graph.conditions import (
    BranchOutput,
    branch_prompt,
    compare_values,
    judge_condition,
    loop_prompt,
)
from flowchain.graph.context import ExecutionContext
from flowchain.graph.errors import NodeExecutionError
from flowchain.graph.models import Node
from flowchain.graph.registry import create_node_definition
from flowchain.llm.provider import LLMOptions

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100


def _judgment_options(node: Node, context: ExecutionContext) -> LLMOptions:
    settings = context.llm_settings
    return LLMOptions(
        provider=node.data.get("provider") or settings.provider,
        model=node.data.get("model") or settings.model,
        temperature=0,
        api_key=settings.api_key,
        base_url=settings.base_url,
        max_tokens=settings.max_tokens,
    )


def _setting(node: Node, key: str, default: Any) -> Any:
    """Node data value, or ``default`` when the field is unset or blank. 0 is kept."""
    value = node.data.get(key)
    return default if value is None or value == "" else value


def _increment(value: Any, variable: str, node_id: str) -> int | float:
    if isinstance(value, bool):
        raise NodeExecutionError(f"Loop variable '{variable}' is not numeric: {value!r}", node_id)
    if isinstance(value, int | float):
        return value + 1
    text = str(value).strip()
    try:
        return int(text) + 1
    except ValueError:
        pass
    try:
        return float(text) + 1
    except ValueError:
        raise NodeExecutionError(
            f"Loop variable '{variable}' is not numeric: {value!r}", node_id
        ) from None


# ============================================================================
# If: two-way branch
# ============================================================================


async def execute_if_node(node: Node, inputs: dict[str, Any], context: ExecutionContext) -> BranchOutput:
    condition_type = node.data.get("conditionType") or "llm"
    input_value = inputs.get("input")

    if condition_type == "llm":
        condition = node.data.get("condition") or ""
        result = await judge_condition(
            context.llm,
            branch_prompt(condition, input_value),
            _judgment_options(node, context),
            node.id,
        )
    else:
        variable = node.data.get("variable") or ""
        operator = node.data.get("operator") or "=="
        expected = node.data.get("value", "")
        if variable not in context.variables:
            raise NodeExecutionError(f"Variable '{variable}' not found", node.id)
        result = compare_values(context.variables[variable], operator, expected)

    context.add_log(
        "info",
        f"Condition evaluated to {result}; routing to '{'true' if result else 'false'}' port",
        node.id,
        {"conditionType": condition_type, "condition": result},
    )
    return BranchOutput.route(result, input_value)


# ============================================================================
# While: bounded loop
# ============================================================================


async def execute_while_node(
    node: Node, inputs: dict[str, Any], context: ExecutionContext
) -> dict[str, Any]:
    """Evaluate the condition before each iteration, up to ``maxIterations``.

    In variable mode an undefined loop variable starts at 0 and is
    incremented by 1 after every satisfied iteration. Hitting the cap ends
    the loop normally.
    """
    condition_type = node.data.get("conditionType") or "variable"
    max_iterations = int(_setting(node, "maxIterations", DEFAULT_MAX_ITERATIONS))
    variable = node.data.get("variable") or "counter"
    operator = node.data.get("operator") or "<"
    limit = _setting(node, "value", "10")
    input_value = inputs.get("input")

    if condition_type == "variable" and variable not in context.variables:
        context.variables[variable] = 0

    results: list[dict[str, Any]] = []
    iteration = 0
    while iteration < max_iterations:
        if condition_type == "variable":
            should_continue = compare_values(context.variables[variable], operator, limit)
        else:
            should_continue = await judge_condition(
                context.llm,
                loop_prompt(node.data.get("condition") or "", input_value, iteration),
                _judgment_options(node, context),
                node.id,
            )
        if not should_continue:
            break

        results.append(
            {
                "iteration": iteration,
                "input": input_value,
                "variables": context.snapshot_variables(),
            }
        )

        if condition_type == "variable":
            context.variables[variable] = _increment(context.variables[variable], variable, node.id)
            context.add_log(
                "debug",
                f"Loop variable '{variable}' incremented to {context.variables[variable]}",
                node.id,
            )

        iteration += 1
    else:
        context.add_log(
            "warning",
            f"Loop stopped at maxIterations ({max_iterations})",
            node.id,
            {"maxIterations": max_iterations},
        )

    context.add_log("info", f"Loop finished after {iteration} iteration(s)", node.id)
    return {"iterations": iteration, "results": results, "output": input_value}


# ============================================================================
# Variable Set
# ============================================================================


async def execute_variable_set_node(
    node: Node, inputs: dict[str, Any], context: ExecutionContext
) -> str:
    variable_name = node.data.get("variableName") or ""
    if not variable_name:
        raise NodeExecutionError("Variable name is not set", node.id)

    if node.data.get("useInput"):
        values = [v for v in inputs.values() if v is not None]
        if not values:
            raise NodeExecutionError("No input provided to variable set node", node.id)
        value = str(values[0])
    else:
        value = node.data.get("value") or ""

    context.variables[variable_name] = value
    context.add_log(
        "info",
        f"Set variable '{variable_name}' to value: {value}",
        node.id,
        {"variableName": variable_name, "value": value},
    )
    return value


IF_NODE = create_node_definition(
    name="If Condition",
    icon="🔀",
    color_theme="pink",
    inputs=["input"],
    outputs=["true", "false"],
    default_data={
        "conditionType": "llm",
        "condition": "Please determine if the input has positive content",
        "variable": "",
        "operator": "==",
        "value": "",
    },
    execute=execute_if_node,
    description="Branch the workflow on a condition. The input flows to the true port "
    "when the condition holds and to the false port otherwise.",
    category="control-flow",
)

WHILE_NODE = create_node_definition(
    name="While Loop",
    icon="🔄",
    color_theme="purple",
    inputs=["input", "loop"],
    outputs=["output", "loop"],
    default_data={
        "conditionType": "variable",
        "condition": "",
        "variable": "counter",
        "operator": "<",
        "value": "10",
        "maxIterations": DEFAULT_MAX_ITERATIONS,
    },
    execute=execute_while_node,
    description="Repeat while a condition holds, with a hard iteration limit.",
    category="control-flow",
)

VARIABLE_SET_NODE = create_node_definition(
    name="Variable Set",
    icon="📝",
    color_theme="amber",
    inputs=["input"],
    outputs=["output"],
    default_data={"variableName": "", "value": "", "useInput": False},
    execute=execute_variable_set_node,
    description="Set a workflow variable from a fixed value or from the input.",
    category="variables",
)
