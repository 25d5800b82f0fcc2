"""
Execution Context - the mutable state of exactly one run.

Holds three things:
- ``variables``: seeded from the caller's initial inputs, mutated by
  input / variable_set / while nodes (last write wins)
- ``node_outputs``: the recorded result of each executed node, written once
- ``log``: a bounded, append-only sequence of structured entries

Execution within a run is strictly sequential, so none of this is locked.
Callers may read it between ``next()`` calls but must not mutate it while a
step is in flight.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from flowchain.config import LLMSettings
from flowchain.llm.provider import LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOG_ENTRIES = 500

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class LogEntry(BaseModel):
    """One structured entry in a run's execution log."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    level: str
    message: str
    node_id: str | None = None
    data: Any = None


LogSink = Callable[[LogEntry], Any]


class ExecutionContext:
    """Per-run variables, node outputs, and log."""

    def __init__(
        self,
        variables: dict[str, Any] | None = None,
        llm: LLMProvider | None = None,
        llm_settings: LLMSettings | None = None,
        max_log_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        debug: bool = False,
        log_sink: LogSink | None = None,
    ):
        self.variables: dict[str, Any] = dict(variables or {})
        self.node_outputs: dict[str, Any] = {}
        self.log: deque[LogEntry] = deque(maxlen=max_log_entries)
        self.llm = llm
        self.llm_settings = llm_settings or LLMSettings()
        self.debug = debug
        self._log_sink = log_sink
        self._sink_tasks: set[asyncio.Task] = set()

    def add_log(
        self,
        level: str,
        message: str,
        node_id: str | None = None,
        data: Any = None,
    ) -> LogEntry | None:
        """Append a structured entry, mirror it to the Python logger, forward it to the sink.

        Debug entries are dropped unless the context was created with
        ``debug=True``. Sink failures are logged and never propagate.
        """
        level = level.lower()
        py_level = _LEVELS.get(level, logging.INFO)
        logger.log(py_level, message, extra={"node_id": node_id} if node_id else None)

        if level == "debug" and not self.debug:
            return None

        entry = LogEntry(level=level, message=message, node_id=node_id, data=data)
        self.log.append(entry)
        self._forward(entry)
        return entry

    def record_output(self, node_id: str, output: Any) -> None:
        """Store a node's result. Each node is recorded at most once per run."""
        if node_id in self.node_outputs:
            raise RuntimeError(f"Output for node '{node_id}' was already recorded")
        self.node_outputs[node_id] = output

    def get_log(self) -> list[LogEntry]:
        return list(self.log)

    def snapshot_variables(self) -> dict[str, Any]:
        return dict(self.variables)

    def _forward(self, entry: LogEntry) -> None:
        if self._log_sink is None:
            return
        try:
            result = self._log_sink(entry)
        except Exception:
            logger.warning("Log sink rejected entry (non-fatal)", exc_info=True)
            return
        if inspect.isawaitable(result):
            try:
                task = asyncio.ensure_future(result)
            except RuntimeError:
                # No running loop; drop the entry rather than block.
                logger.debug("No event loop for async log sink; entry dropped")
                if inspect.iscoroutine(result):
                    result.close()
                return
            self._sink_tasks.add(task)
            task.add_done_callback(self._sink_done)

    def _sink_done(self, task: asyncio.Task) -> None:
        self._sink_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Log sink failed (non-fatal): {exc}")
