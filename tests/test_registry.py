"""Tests for node definitions and the registry."""

import pytest

from flowchain.graph.errors import RegistryError
from flowchain.graph.registry import NodeRegistry, create_node_definition
from flowchain.nodes import BUILTIN_NODES, create_default_registry, get_node_registry


async def _noop(node, inputs, context):
    return None


def _definition(**overrides):
    params = {
        "name": "Test",
        "icon": "🧪",
        "color_theme": "cyan",
        "inputs": ["input"],
        "outputs": ["output"],
        "default_data": {"x": 1},
        "execute": _noop,
    }
    params.update(overrides)
    return create_node_definition(**params)


class TestNodeDefinition:
    def test_create_definition(self):
        definition = _definition(description="does things", category="general")

        assert definition.inputs == ("input",)
        assert definition.outputs == ("output",)
        assert definition.theme["color"] == "from-cyan-400 to-cyan-600"
        assert definition.input_name(0) == "input"
        assert definition.input_name(1) is None

    def test_execute_must_be_callable(self):
        with pytest.raises(RegistryError, match="callable"):
            _definition(execute="not a function")

    def test_unknown_color_theme(self):
        with pytest.raises(RegistryError, match="Unknown color theme"):
            _definition(color_theme="magenta")

    def test_ports_must_be_strings(self):
        with pytest.raises(RegistryError):
            _definition(inputs=[1, 2])

    def test_definition_is_immutable(self):
        definition = _definition()
        with pytest.raises(AttributeError):
            definition.name = "changed"


class TestNodeRegistry:
    def test_register_and_lookup(self):
        registry = NodeRegistry()
        definition = _definition()
        registry.register("test", definition)

        assert registry.lookup("test") is definition
        assert registry.get("test") is definition
        assert "test" in registry
        assert len(registry) == 1

    def test_lookup_missing(self):
        registry = NodeRegistry()
        assert registry.lookup("nope") is None
        with pytest.raises(KeyError):
            registry.get("nope")

    def test_duplicate_registration(self):
        registry = NodeRegistry()
        registry.register("test", _definition())
        with pytest.raises(RegistryError, match="already registered"):
            registry.register("test", _definition())

    def test_frozen_registry_rejects_registration(self):
        registry = NodeRegistry().freeze()
        with pytest.raises(RegistryError, match="frozen"):
            registry.register("test", _definition())

    def test_rejects_non_definitions(self):
        with pytest.raises(RegistryError):
            NodeRegistry().register("test", {"execute": _noop})


class TestBuiltinNodes:
    def test_default_registry_has_all_builtins(self):
        registry = create_default_registry()

        assert registry.list_types() == list(BUILTIN_NODES)
        assert registry.frozen

    def test_categories(self):
        grouped = create_default_registry().by_category()

        assert set(grouped["input-output"]) == {"input", "output"}
        assert set(grouped["control-flow"]) == {"if", "while"}
        assert set(grouped["ai"]) == {"llm"}
        assert set(grouped["variables"]) == {"variable_set"}
        assert set(grouped["text-processing"]) == {"text_combiner"}

    def test_ports(self):
        registry = create_default_registry()

        assert registry.get("if").outputs == ("true", "false")
        assert registry.get("while").inputs == ("input", "loop")
        assert registry.get("text_combiner").inputs == ("input1", "input2", "input3", "input4")
        assert registry.get("input").inputs == ()

    def test_shared_registry_is_singleton(self):
        assert get_node_registry() is get_node_registry()
