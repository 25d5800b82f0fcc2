"""Run history: file-backed store and a non-blocking logger adapter."""

from flowchain.runtime.run_log_schemas import NodeRunLog, WorkflowRunRecord
from flowchain.runtime.run_log_store import RunLogStore, RunStore
from flowchain.runtime.run_logger import RunLogger

__all__ = [
    "NodeRunLog",
    "RunLogStore",
    "RunLogger",
    "RunStore",
    "WorkflowRunRecord",
]
