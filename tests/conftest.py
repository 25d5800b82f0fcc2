"""Shared fixtures: isolated flowchain home, default registry, logging reset."""

from __future__ import annotations

import logging

import pytest

from flowchain.nodes import create_default_registry
from flowchain.observability import clear_trace_context


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point FLOWCHAIN_HOME at a temp dir and drop provider keys from the env."""
    home = tmp_path / "flowchain-home"
    monkeypatch.setenv("FLOWCHAIN_HOME", str(home))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    yield home
    clear_trace_context()


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def restore_logging():
    """Undo configure_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
