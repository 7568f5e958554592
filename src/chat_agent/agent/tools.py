"""Tool registry: named callables the execution engine invokes by identifier."""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

ToolFunction = Callable[[dict[str, Any]], Any]


class ToolInvocationError(Exception):
    """Tool call failed; the message is meant for humans."""


class UnknownToolError(ToolInvocationError):
    """No tool is registered under the requested identifier."""


@dataclass(slots=True)
class ToolSpec:
    """Registered tool metadata."""

    name: str
    function: ToolFunction
    category: str = "custom"
    description: str = ""


class ToolRegistry:
    """Capability set of named tools.

    A tool receives its resolved parameter mapping and returns a value, or an
    awaitable producing one. Sync tools run inline on the caller's event loop.
    """

    def __init__(self, tools: Iterable[ToolSpec] = ()) -> None:
        self._tools: dict[str, ToolSpec] = {}
        for spec in tools:
            self._tools[spec.name] = spec

    def register(
        self,
        name: str,
        function: ToolFunction,
        *,
        category: str = "custom",
        description: str = "",
        replace: bool = False,
    ) -> None:
        """Register a tool under ``name``."""

        if not name:
            raise ValueError("Tool name must be non-empty.")
        if name in self._tools and not replace:
            raise ValueError(f"Tool already registered: {name!r}")
        self._tools[name] = ToolSpec(
            name=name,
            function=function,
            category=category,
            description=description,
        )

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return sorted(self._tools)

    def by_category(self) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for spec in self._tools.values():
            grouped.setdefault(spec.category, []).append(spec.name)
        return {category: sorted(names) for category, names in sorted(grouped.items())}

    async def invoke(self, tool_id: str, params: Mapping[str, Any]) -> Any:
        """Invoke a tool and return its value.

        Raises:
            UnknownToolError: No tool is registered under ``tool_id``.
            ToolInvocationError: The tool raised or its awaitable failed.
        """

        spec = self._tools.get(tool_id)
        if spec is None:
            raise UnknownToolError(f"Unknown tool: {tool_id}")

        started = time.monotonic()
        logger.debug("Invoking tool %s with %s", tool_id, dict(params))
        try:
            value = spec.function(dict(params))
            if inspect.isawaitable(value):
                value = await value
        except ToolInvocationError:
            raise
        except Exception as error:  # noqa: BLE001
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.warning("Tool %s failed after %sms: %s", tool_id, elapsed_ms, error)
            raise ToolInvocationError(str(error) or type(error).__name__) from error
        logger.debug(
            "Tool %s completed in %sms",
            tool_id,
            int((time.monotonic() - started) * 1000),
        )
        return value
