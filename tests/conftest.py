"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from chat_agent.agent.tools import ToolRegistry


class FakeClock:
    """Manually advanced clock for scheduler and worker tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class SpyRegistry(ToolRegistry):
    """Registry that records every invocation in order."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def add(self, name: str, function: Callable[[dict[str, Any]], Any]) -> None:
        def _recording(params: dict[str, Any]) -> Any:
            self.calls.append((name, params))
            return function(params)

        self.register(name, _recording)

    def called(self, name: str) -> int:
        return sum(1 for tool, _ in self.calls if tool == name)


def _fail(params: dict[str, Any]) -> Any:
    raise RuntimeError(params.get("message", "boom"))


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def spy_registry() -> SpyRegistry:
    registry = SpyRegistry()
    registry.add("echo", lambda params: params.get("value"))
    registry.add("upper", lambda params: str(params.get("text", "")).upper())
    registry.add("fail", _fail)
    return registry


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    """Keep host CHAT_AGENT_* variables out of settings-driven tests."""

    for name in list(os.environ):
        if name.startswith("CHAT_AGENT_"):
            monkeypatch.delenv(name, raising=False)
