"""Pydantic models for run history.

WorkflowRunRecord - one per run: status, inputs, timing, failure point
NodeRunLog        - one per executed node: inputs, outputs, error, timing
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

RUN_STATUSES = ("running", "completed", "error", "stopped")
FINAL_STATUSES = frozenset({"completed", "error", "stopped"})


def _now() -> str:
    return datetime.now(UTC).isoformat()


class WorkflowRunRecord(BaseModel):
    """Run-level record, created when a run starts and updated when it ends."""

    id: str
    workflow_id: str = ""
    status: str = "running"  # "running"|"completed"|"error"|"stopped"
    input_data: dict[str, Any] = Field(default_factory=dict)
    started_at: str = Field(default_factory=_now)
    ended_at: str | None = None
    error: str | None = None
    failed_node_id: str | None = None


class NodeRunLog(BaseModel):
    """Result of one node execution within a run."""

    id: str
    run_id: str
    node_id: str
    status: str  # "success"|"error"
    inputs: dict[str, Any] = Field(default_factory=dict)
    outputs: Any = None
    error: str | None = None
    processing_time_ms: int = 0
    timestamp: str = Field(default_factory=_now)
