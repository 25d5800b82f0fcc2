"""Tests for structured logging and run context propagation."""

import asyncio
import json
import logging

import pytest

from flowchain.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)
from flowchain.observability.logging import HumanReadableFormatter, StructuredFormatter

pytestmark = pytest.mark.usefixtures("restore_logging")


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("flowchain.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges(self):
        set_trace_context(run_id="r1")
        set_trace_context(node_id="n1")

        assert get_trace_context() == {"run_id": "r1", "node_id": "n1"}

    def test_clear(self):
        set_trace_context(run_id="r1")
        clear_trace_context()

        assert get_trace_context() == {}

    @pytest.mark.asyncio
    async def test_tasks_do_not_share_context(self):
        async def worker(run_id):
            set_trace_context(run_id=run_id)
            await asyncio.sleep(0)
            return get_trace_context()["run_id"]

        results = await asyncio.gather(worker("a"), worker("b"))

        assert results == ["a", "b"]


class TestFormatters:
    def test_structured_includes_context_and_extras(self):
        set_trace_context(run_id="run-123", workflow_id="wf-1")

        line = StructuredFormatter().format(_record("step done", node_id="n1", latency_ms=12))

        data = json.loads(line)
        assert data["message"] == "step done"
        assert data["level"] == "info"
        assert data["run_id"] == "run-123"
        assert data["workflow_id"] == "wf-1"
        assert data["node_id"] == "n1"
        assert data["latency_ms"] == 12

    def test_structured_strips_ansi(self):
        line = StructuredFormatter().format(_record("\033[31mred\033[0m"))

        assert json.loads(line)["message"] == "red"

    def test_human_prefix(self):
        set_trace_context(run_id="abcdefgh12345678", workflow_id="wf-1")

        text = HumanReadableFormatter().format(_record("hello", node_id="n1"))

        assert "[run:12345678 | wf:wf-1 | node:n1]" in text
        assert text.endswith("hello")

    def test_human_without_context(self):
        text = HumanReadableFormatter().format(_record("plain"))

        assert "[run:" not in text


class TestConfigureLogging:
    def test_json_format(self):
        configure_logging(level="DEBUG", format="json")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_auto_picks_json_in_production(self, monkeypatch):
        monkeypatch.setenv("ENV", "production")
        configure_logging(format="auto")

        assert isinstance(logging.getLogger().handlers[0].formatter, StructuredFormatter)

    def test_auto_defaults_to_human(self, monkeypatch):
        monkeypatch.delenv("ENV", raising=False)
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        configure_logging(format="auto")

        assert isinstance(logging.getLogger().handlers[0].formatter, HumanReadableFormatter)
