"""
Condition evaluation shared by the branch (``if``) and loop (``while``) nodes.

Two modes:
- variable: compare a workflow variable against a literal. Numeric comparison
  is tried first, reading the leading number of each side the way a lenient
  float parser does; if either side does not start with a number both sides
  are compared as strings with the same operator.
- llm: ask the model to answer "true" or "false". The answer counts as true
  when it contains "true" anywhere, case-insensitively.
"""

from __future__ import annotations

import logging
import math
import operator
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from flowchain.graph.errors import NodeExecutionError
from flowchain.llm.provider import LLMError, LLMOptions, LLMProvider

logger = logging.getLogger(__name__)

OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

# Leading number of a string; trailing text is ignored ("5 apples" -> 5).
_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")

TRUE_PORT = 0
FALSE_PORT = 1


@dataclass(frozen=True)
class BranchOutput:
    """Result of a branch node: the input passes through exactly one port.

    ``true_value`` is the input when the condition held, else ``None``;
    ``false_value`` is the mirror image. The input router picks the value for
    the source port an edge leaves from.
    """

    condition: bool
    true_value: Any = None
    false_value: Any = None

    @classmethod
    def route(cls, condition: bool, value: Any) -> BranchOutput:
        if condition:
            return cls(condition=True, true_value=value, false_value=None)
        return cls(condition=False, true_value=None, false_value=value)

    def for_port(self, port_index: int) -> Any:
        if port_index == TRUE_PORT:
            return self.true_value
        if port_index == FALSE_PORT:
            return self.false_value
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"condition": self.condition, "true": self.true_value, "false": self.false_value}


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if match is None:
            return None
        number = float(match.group(0))
    return None if math.isnan(number) else number


def compare_values(left: Any, op: str, right: Any) -> bool:
    """Compare ``left`` and ``right`` with ``op``, numerically when both parse as numbers.

    Raises:
        NodeExecutionError: if ``op`` is not one of ==, !=, <, <=, >, >=
    """
    fn = OPERATORS.get(op)
    if fn is None:
        raise NodeExecutionError(f"Unsupported comparison operator: '{op}'")

    left_num = _as_number(left)
    right_num = _as_number(right)
    if left_num is not None and right_num is not None:
        return fn(left_num, right_num)
    return fn("" if left is None else str(left), "" if right is None else str(right))


def interpret_judgment(response: str, node_id: str | None = None) -> bool:
    """Map a model's free-text answer to a boolean.

    Responses containing both words or neither are still decided by the
    substring rule but are logged as ambiguous.
    """
    text = (response or "").lower()
    has_true = "true" in text
    has_false = "false" in text
    if has_true == has_false:
        logger.warning(
            f"Ambiguous LLM judgment {text[:80]!r}; treating as {has_true}",
            extra={"node_id": node_id} if node_id else None,
        )
    return has_true


async def judge_condition(
    llm: LLMProvider | None,
    prompt: str,
    options: LLMOptions | None = None,
    node_id: str | None = None,
) -> bool:
    """Ask the model a yes/no question and interpret the answer.

    Raises:
        NodeExecutionError: no provider is configured or the call failed
    """
    if llm is None:
        raise NodeExecutionError("No LLM provider configured for condition evaluation", node_id)
    try:
        response = await llm.send_message(prompt, None, options or LLMOptions(temperature=0))
    except LLMError as e:
        raise NodeExecutionError(f"Condition evaluation failed: {e}", node_id) from e
    return interpret_judgment(response, node_id)


def branch_prompt(condition: str, input_value: Any) -> str:
    return (
        f"{condition}\n\n"
        f"Input: {'' if input_value is None else input_value}\n\n"
        "Based on the condition above, decide whether the input satisfies it. "
        'Answer only "true" if it does, or "false" if it does not.'
    )


def loop_prompt(condition: str, input_value: Any, iteration: int) -> str:
    return (
        f"{condition}\n\n"
        f"Current state: {'' if input_value is None else input_value}\n"
        f"Iteration: {iteration}\n\n"
        "Based on the condition above, decide whether processing should continue. "
        'Answer only "true" to continue, or "false" to stop.'
    )
