"""Workflow document persistence."""

from flowchain.storage.workflow_store import WorkflowStore, load_workflow_file

__all__ = ["WorkflowStore", "load_workflow_file"]
