"""File-based storage for run history.

Each run gets its own directory. There is no shared index: ``list_runs()``
scans the directory and loads run.json from each run.

Node logs use JSONL (one JSON object per line) so every node result is on
disk as soon as it is logged. The run record is rewritten atomically on each
update.

Storage layout::

    {base_path}/
      {run_id}/
        run.json      # WorkflowRunRecord, rewritten on update
        nodes.jsonl   # NodeRunLog, appended per node
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from flowchain.runtime.run_log_schemas import FINAL_STATUSES, NodeRunLog, WorkflowRunRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class RunStore(Protocol):
    """What the engine needs from a run-history backend."""

    async def create_run(self, workflow_id: str, input_data: dict[str, Any]) -> str: ...

    async def update_run(self, run_id: str, **changes: Any) -> None: ...

    async def add_node_log(self, run_id: str, node_id: str, status: str, **fields: Any) -> None: ...


class RunLogStore:
    """Persists run records and node logs under ``base_path``."""

    def __init__(self, base_path: Path | str) -> None:
        self._base_path = Path(base_path)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _run_dir(self, run_id: str) -> Path:
        if not run_id or "/" in run_id or "\\" in run_id or run_id.startswith("."):
            raise ValueError(f"Invalid run id: {run_id!r}")
        return self._base_path / run_id

    # -------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------

    async def create_run(self, workflow_id: str, input_data: dict[str, Any]) -> str:
        """Create a run record in ``running`` status. Returns the run id."""
        ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
        run_id = f"{ts}_{uuid.uuid4().hex[:8]}"
        record = WorkflowRunRecord(id=run_id, workflow_id=workflow_id, input_data=input_data)

        run_dir = self._run_dir(run_id)
        await asyncio.to_thread(run_dir.mkdir, parents=True, exist_ok=True)
        await self._write_json(run_dir / "run.json", record.model_dump(mode="json"))
        return run_id

    async def update_run(self, run_id: str, **changes: Any) -> None:
        """Apply ``changes`` to the run record. Sets ``ended_at`` on a final status.

        Raises:
            KeyError: the run does not exist
        """
        path = self._run_dir(run_id) / "run.json"
        data = await self._read_json(path)
        if data is None:
            raise KeyError(f"Run not found: {run_id}")

        record = WorkflowRunRecord(**{**data, **changes})
        if record.status in FINAL_STATUSES and record.ended_at is None:
            record.ended_at = datetime.now(UTC).isoformat()
        await self._write_json(path, record.model_dump(mode="json"))

    async def add_node_log(self, run_id: str, node_id: str, status: str, **fields: Any) -> None:
        """Append one node result to the run's nodes.jsonl."""
        entry = NodeRunLog(
            id=uuid.uuid4().hex,
            run_id=run_id,
            node_id=node_id,
            status=status,
            **fields,
        )
        path = self._run_dir(run_id) / "nodes.jsonl"
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False, default=str) + "\n"

        def _append() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(line)

        await asyncio.to_thread(_append)

    async def clear_all(self) -> None:
        """Delete every stored run."""

        def _clear() -> None:
            if self._base_path.exists():
                shutil.rmtree(self._base_path)

        await asyncio.to_thread(_clear)

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    async def get_run(self, run_id: str) -> WorkflowRunRecord | None:
        data = await self._read_json(self._run_dir(run_id) / "run.json")
        return WorkflowRunRecord(**data) if data is not None else None

    async def list_runs(self, workflow_id: str | None = None, limit: int = 50) -> list[WorkflowRunRecord]:
        """Load run records, newest first, optionally for one workflow."""
        run_ids = await asyncio.to_thread(self._scan_run_dirs)
        runs: list[WorkflowRunRecord] = []
        for run_id in run_ids:
            record = await self.get_run(run_id)
            if record is None:
                continue
            if workflow_id is not None and record.workflow_id != workflow_id:
                continue
            runs.append(record)

        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs[:limit]

    async def get_logs_for_run(self, run_id: str) -> list[NodeRunLog]:
        """Node logs for a run in timestamp order. Empty if the run is unknown."""
        path = self._run_dir(run_id) / "nodes.jsonl"
        logs = await asyncio.to_thread(_read_jsonl_as_models, path, NodeRunLog)
        logs.sort(key=lambda entry: entry.timestamp)
        return logs

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _scan_run_dirs(self) -> list[str]:
        if not self._base_path.exists():
            return []
        return [d.name for d in self._base_path.iterdir() if d.is_dir()]

    @staticmethod
    async def _write_json(path: Path, data: dict) -> None:
        """Write JSON atomically: write to .tmp then rename."""
        tmp = path.with_suffix(".tmp")
        content = json.dumps(data, indent=2, ensure_ascii=False, default=str)

        def _write() -> None:
            tmp.write_text(content, encoding="utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)

    @staticmethod
    async def _read_json(path: Path) -> dict | None:
        """Read and parse a JSON file. Returns None if missing or corrupt."""

        def _read() -> dict | None:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning("Failed to read %s: %s", path, e)
                return None

        return await asyncio.to_thread(_read)


def _read_jsonl_as_models(path: Path, model_cls: type) -> list:
    """Parse a JSONL file into model instances, skipping blank and corrupt lines."""
    results = []
    if not path.exists():
        return results
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    results.append(model_cls(**json.loads(line)))
                except Exception as e:
                    logger.warning("Skipping corrupt JSONL line in %s: %s", path, e)
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
    return results
