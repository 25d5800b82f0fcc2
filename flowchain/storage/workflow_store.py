"""
Workflow Store: JSON-file persistence for workflow documents.

One file per workflow under ``storage_dir``, named by id. Files use the
editor's JSON shape (``from``/``to`` connection keys) so they can be moved
between the editor and the CLI unchanged.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from flowchain.config import EngineConfig
from flowchain.graph.models import WorkflowDefinition

logger = logging.getLogger(__name__)


def validate_workflow_id(workflow_id: str) -> None:
    """
    Reject ids that could escape the storage directory.

    Raises:
        ValueError: empty id, path separators, traversal, or null bytes
    """
    if not workflow_id or workflow_id.strip() == "":
        raise ValueError("Workflow id cannot be empty")
    if "/" in workflow_id or "\\" in workflow_id:
        raise ValueError(f"Invalid workflow id: path separators not allowed in '{workflow_id}'")
    if ".." in workflow_id or workflow_id.startswith("."):
        raise ValueError(f"Invalid workflow id: path traversal detected in '{workflow_id}'")
    if "\x00" in workflow_id:
        raise ValueError("Invalid workflow id: null bytes not allowed")


class WorkflowStore:
    """Persist and load WorkflowDefinition objects as JSON files."""

    def __init__(self, storage_dir: Path | str | None = None) -> None:
        self._dir = Path(storage_dir) if storage_dir else EngineConfig().workflows_dir
        self._dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"WorkflowStore initialized at {self._dir}")

    @property
    def storage_dir(self) -> Path:
        return self._dir

    # ── CRUD ──

    def save(self, workflow: WorkflowDefinition) -> Path:
        """Save (create or update) a workflow. Returns the file path."""
        workflow.touch()
        path = self._path_for(workflow.id)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(workflow.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        tmp.replace(path)
        logger.info(f"Workflow saved: {workflow.name} ({workflow.id})")
        return path

    def load(self, workflow_id: str) -> WorkflowDefinition | None:
        """Load a workflow by id; None if missing or malformed."""
        path = self._path_for(workflow_id)
        if not path.exists():
            return None
        try:
            return WorkflowDefinition.model_validate_json(path.read_text(encoding="utf-8"))
        except (ValidationError, OSError) as e:
            logger.error(f"Failed to load workflow {workflow_id}: {e}")
            return None

    def delete(self, workflow_id: str) -> bool:
        path = self._path_for(workflow_id)
        if path.exists():
            path.unlink()
            logger.info(f"Workflow deleted: {workflow_id}")
            return True
        return False

    def list_all(self) -> list[WorkflowDefinition]:
        """All stored workflows, most recently updated first."""
        workflows: list[WorkflowDefinition] = []
        for path in sorted(self._dir.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                workflows.append(WorkflowDefinition.model_validate(data))
            except (json.JSONDecodeError, ValidationError, OSError) as e:
                logger.warning(f"Skipping malformed workflow file {path.name}: {e}")
        workflows.sort(key=lambda w: w.updated_at, reverse=True)
        return workflows

    def exists(self, workflow_id: str) -> bool:
        return self._path_for(workflow_id).exists()

    # ── Internals ──

    def _path_for(self, workflow_id: str) -> Path:
        validate_workflow_id(workflow_id)
        return self._dir / f"{workflow_id}.json"


def load_workflow_file(path: Path | str) -> WorkflowDefinition:
    """
    Read a workflow document from an arbitrary JSON file.

    Accepts a full document or a bare ``{"nodes": [...], "connections": [...]}``
    export; a missing id is derived from the file name.

    Raises:
        FileNotFoundError: the file does not exist
        ValueError: the file is not a valid workflow document
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a workflow object")
    data.setdefault("id", path.stem)
    data.setdefault("name", path.stem)
    try:
        return WorkflowDefinition.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"{path} is not a valid workflow: {e}") from e
