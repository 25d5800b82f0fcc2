"""Tests for WorkflowStore and workflow document parsing."""

import json
from pathlib import Path

import pytest

from flowchain.graph.models import Connection, Node, WorkflowDefinition
from flowchain.storage import WorkflowStore, load_workflow_file


def _workflow(workflow_id: str = "wf-1") -> WorkflowDefinition:
    return WorkflowDefinition(
        id=workflow_id,
        name="Greeting",
        nodes=[
            Node(id="i1", type="input", data={"value": "hello", "label": "Prompt"}),
            Node(id="o1", type="output"),
        ],
        connections=[Connection.between("i1", "o1", id="c1")],
    )


class TestWorkflowStore:
    def test_save_and_load(self, tmp_path: Path):
        store = WorkflowStore(tmp_path)
        store.save(_workflow())

        loaded = store.load("wf-1")

        assert loaded is not None
        assert loaded.name == "Greeting"
        assert loaded.get_node("i1").label == "Prompt"
        assert loaded.connections[0].source.node_id == "i1"
        assert store.exists("wf-1")

    def test_file_uses_editor_keys(self, tmp_path: Path):
        store = WorkflowStore(tmp_path)
        path = store.save(_workflow())

        data = json.loads(path.read_text(encoding="utf-8"))

        conn = data["connections"][0]
        assert conn["from"] == {"nodeId": "i1", "portIndex": 0, "port": None}
        assert conn["to"]["nodeId"] == "o1"

    def test_save_updates_timestamp(self, tmp_path: Path):
        store = WorkflowStore(tmp_path)
        workflow = _workflow()
        workflow.updated_at = "2000-01-01T00:00:00+00:00"

        store.save(workflow)

        assert store.load("wf-1").updated_at > "2000-01-01T00:00:00+00:00"

    def test_load_missing(self, tmp_path: Path):
        assert WorkflowStore(tmp_path).load("nope") is None

    def test_load_malformed(self, tmp_path: Path):
        (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
        store = WorkflowStore(tmp_path)

        assert store.load("bad") is None
        assert store.list_all() == []

    def test_delete(self, tmp_path: Path):
        store = WorkflowStore(tmp_path)
        store.save(_workflow())

        assert store.delete("wf-1") is True
        assert store.delete("wf-1") is False
        assert not store.exists("wf-1")

    def test_list_all(self, tmp_path: Path):
        store = WorkflowStore(tmp_path)
        store.save(_workflow("a"))
        store.save(_workflow("b"))

        assert sorted(w.id for w in store.list_all()) == ["a", "b"]

    @pytest.mark.parametrize("bad_id", ["", "../etc", "a/b", ".hidden"])
    def test_rejects_unsafe_ids(self, tmp_path: Path, bad_id):
        with pytest.raises(ValueError):
            WorkflowStore(tmp_path).load(bad_id)

    def test_default_directory_under_home(self, isolated_home):
        store = WorkflowStore()
        assert store.storage_dir == isolated_home / "workflows"


class TestLoadWorkflowFile:
    def test_bare_export(self, tmp_path: Path):
        path = tmp_path / "greeting.json"
        path.write_text(
            json.dumps(
                {
                    "nodes": [{"id": "i1", "type": "input", "data": {"value": "hi"}}],
                    "connections": [],
                }
            ),
            encoding="utf-8",
        )

        workflow = load_workflow_file(path)

        assert workflow.id == "greeting"
        assert workflow.initial_inputs() == {"i1": "hi"}

    def test_invalid_document(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"nodes": [{"type": "input"}]}), encoding="utf-8")

        with pytest.raises(ValueError, match="not a valid workflow"):
            load_workflow_file(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_workflow_file(tmp_path / "missing.json")
