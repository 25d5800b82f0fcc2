"""RunLogger: forwards run history to a RunStore without blocking the run.

Injected into WorkflowRun as an optional parameter. Every call schedules a
background task and returns immediately; node logs and the final update wait
for the run id from ``start_run()`` before writing.

Usage::

    store = RunLogStore(Path(home) / "runs")
    run_logger = RunLogger(store, workflow_id="wf-1")
    run = WorkflowRun(..., run_logger=run_logger)
    ...
    await run_logger.flush()  # optional: wait for pending writes

Safety: store failures are caught inside the background tasks and logged via
the Python logger. A failing store must never fail or stall a run.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from typing import Any

from flowchain.runtime.run_log_store import RunStore

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return str(value)


def to_jsonable(value: Any) -> Any:
    """Convert node inputs/outputs to plain JSON types for storage."""
    try:
        return json.loads(json.dumps(value, default=_json_default))
    except (TypeError, ValueError):
        return str(value)


class RunLogger:
    """Best-effort adapter between one run and a RunStore."""

    def __init__(self, store: RunStore, workflow_id: str = "") -> None:
        self._store = store
        self._workflow_id = workflow_id
        self._run_id_task: asyncio.Task[str | None] | None = None
        self._pending: set[asyncio.Task] = set()
        # FIFO: writes reach the store in the order they were requested
        self._write_lock = asyncio.Lock()

    @property
    def run_id(self) -> str | None:
        """The store's run id once ``start_run`` has completed, else None."""
        task = self._run_id_task
        if task is None or not task.done() or task.cancelled():
            return None
        return task.result()

    def start_run(self, input_data: dict[str, Any]) -> None:
        """Create the run record in the background."""
        self._run_id_task = self._schedule(self._create_run(to_jsonable(input_data)))

    def log_node(
        self,
        node_id: str,
        status: str,
        inputs: dict[str, Any] | None = None,
        outputs: Any = None,
        error: str | None = None,
        processing_time_ms: int = 0,
    ) -> None:
        """Record one node result in the background."""
        fields = {
            "inputs": to_jsonable(inputs or {}),
            "outputs": to_jsonable(outputs),
            "error": error,
            "processing_time_ms": processing_time_ms,
        }
        self._schedule(self._add_node_log(node_id, status, fields))

    def end_run(
        self,
        status: str,
        error: str | None = None,
        failed_node_id: str | None = None,
    ) -> None:
        """Record the run's final status in the background."""
        changes: dict[str, Any] = {"status": status}
        if error is not None:
            changes["error"] = error
        if failed_node_id is not None:
            changes["failed_node_id"] = failed_node_id
        self._schedule(self._update_run(changes))

    async def flush(self) -> None:
        """Wait for all scheduled writes. Never raises for store failures."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -------------------------------------------------------------------
    # Background work
    # -------------------------------------------------------------------

    def _schedule(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task | None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; run history entry dropped")
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _await_run_id(self) -> str | None:
        if self._run_id_task is None:
            return None
        return await self._run_id_task

    async def _create_run(self, input_data: dict[str, Any]) -> str | None:
        async with self._write_lock:
            try:
                run_id = await self._store.create_run(self._workflow_id, input_data)
            except Exception:
                logger.exception("Failed to create run record (non-fatal)")
                return None
        logger.debug(f"Run record created: {run_id}")
        return run_id

    async def _add_node_log(self, node_id: str, status: str, fields: dict[str, Any]) -> None:
        async with self._write_lock:
            run_id = await self._await_run_id()
            if run_id is None:
                return
            try:
                await self._store.add_node_log(run_id, node_id, status, **fields)
            except Exception:
                logger.exception(f"Failed to log node '{node_id}' for run {run_id} (non-fatal)")

    async def _update_run(self, changes: dict[str, Any]) -> None:
        async with self._write_lock:
            run_id = await self._await_run_id()
            if run_id is None:
                return
            try:
                await self._store.update_run(run_id, **changes)
            except Exception:
                logger.exception(f"Failed to update run {run_id} (non-fatal)")
                return
        logger.info(f"Run history saved: run_id={run_id} status={changes.get('status')}")
