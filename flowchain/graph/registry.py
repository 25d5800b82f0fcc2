"""
Node Registry - maps a node type name to its definition.

A definition carries display metadata, ordered input/output port names,
default data, and an asynchronous execute function of uniform shape::

    async def execute(node, inputs, context) -> Any

The executor depends only on that shape, so new node behaviours are added by
registering a definition, never by editing the executor. Definitions are
validated when they are created; a registry is frozen before runs start and
is read-only afterwards.
"""

from __future__ import annotations

from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from flowchain.graph.errors import RegistryError

if TYPE_CHECKING:
    from flowchain.graph.context import ExecutionContext
    from flowchain.graph.models import Node


NODE_COLORS: dict[str, dict[str, str]] = {
    "orange": {"color": "from-orange-400 to-orange-600", "border_color": "border-orange-300"},
    "blue": {"color": "from-blue-400 to-blue-600", "border_color": "border-blue-300"},
    "green": {"color": "from-green-400 to-green-600", "border_color": "border-green-300"},
    "teal": {"color": "from-teal-400 to-teal-600", "border_color": "border-teal-300"},
    "pink": {"color": "from-pink-400 to-pink-600", "border_color": "border-pink-300"},
    "purple": {"color": "from-purple-400 to-purple-600", "border_color": "border-purple-300"},
    "amber": {"color": "from-amber-400 to-amber-600", "border_color": "border-amber-300"},
    "cyan": {"color": "from-cyan-400 to-cyan-600", "border_color": "border-cyan-300"},
}

CATEGORY_NAMES: dict[str, str] = {
    "input-output": "Input/Output",
    "ai": "AI Generation",
    "text-processing": "Text Processing",
    "control-flow": "Control Flow",
    "variables": "Variables",
    "general": "General",
}


@runtime_checkable
class NodeExecutor(Protocol):
    """Uniform execute signature shared by every node type."""

    def __call__(
        self,
        node: Node,
        inputs: dict[str, Any],
        context: ExecutionContext,
    ) -> Awaitable[Any]: ...


@dataclass(frozen=True)
class NodeDefinition:
    """Immutable description of one node type."""

    name: str
    execute: NodeExecutor
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    default_data: Mapping[str, Any] = field(default_factory=dict)
    icon: str = ""
    color_theme: str = "blue"
    description: str = ""
    category: str = "general"

    def __post_init__(self) -> None:
        if not callable(self.execute):
            raise RegistryError(f"Execute method must be callable for node: {self.name}")
        if self.color_theme not in NODE_COLORS:
            raise RegistryError(f"Unknown color theme: {self.color_theme}")
        for attr in ("inputs", "outputs"):
            ports = getattr(self, attr)
            if isinstance(ports, str) or not all(isinstance(p, str) for p in ports):
                raise RegistryError(f"{attr} of node '{self.name}' must be a sequence of strings")
            object.__setattr__(self, attr, tuple(ports))

    @property
    def theme(self) -> dict[str, str]:
        return NODE_COLORS[self.color_theme]

    def input_name(self, port_index: int) -> str | None:
        """Declared input port name at ``port_index``, if any."""
        if 0 <= port_index < len(self.inputs):
            return self.inputs[port_index]
        return None


def create_node_definition(
    name: str,
    icon: str,
    color_theme: str,
    inputs: Iterable[str] | None,
    outputs: Iterable[str] | None,
    default_data: Mapping[str, Any] | None,
    execute: NodeExecutor,
    description: str = "",
    category: str = "general",
) -> NodeDefinition:
    """Build and validate a node definition.

    Raises:
        RegistryError: if ``execute`` is not callable, the colour theme is
            unknown, or a port list is not a sequence of strings.
    """
    return NodeDefinition(
        name=name,
        icon=icon,
        color_theme=color_theme,
        inputs=tuple(inputs or ()),
        outputs=tuple(outputs or ()),
        default_data=dict(default_data or {}),
        execute=execute,
        description=description,
        category=category,
    )


class NodeRegistry:
    """Process-wide mapping of node type name to ``NodeDefinition``."""

    def __init__(self) -> None:
        self._definitions: dict[str, NodeDefinition] = {}
        self._frozen = False

    def register(self, node_type: str, definition: NodeDefinition) -> None:
        if self._frozen:
            raise RegistryError(f"Registry is frozen; cannot register '{node_type}'")
        if not isinstance(definition, NodeDefinition):
            raise RegistryError(f"Definition for '{node_type}' must be a NodeDefinition")
        if node_type in self._definitions:
            raise RegistryError(f"Node type '{node_type}' is already registered")
        self._definitions[node_type] = definition

    def lookup(self, node_type: str) -> NodeDefinition | None:
        return self._definitions.get(node_type)

    def get(self, node_type: str) -> NodeDefinition:
        definition = self._definitions.get(node_type)
        if definition is None:
            raise KeyError(node_type)
        return definition

    def freeze(self) -> NodeRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list_types(self) -> list[str]:
        """Registered type names in registration order."""
        return list(self._definitions)

    def by_category(self) -> dict[str, dict[str, NodeDefinition]]:
        """Group definitions by category, preserving registration order."""
        grouped: dict[str, dict[str, NodeDefinition]] = {}
        for node_type, definition in self._definitions.items():
            grouped.setdefault(definition.category, {})[node_type] = definition
        return grouped

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
