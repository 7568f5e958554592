"""Load agent definition documents (JSON) into executable models.

Guard conditions are parsed here, once per step, so execution only evaluates
prepared ``Comparison`` objects.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from chat_agent.agent.expressions import ConditionError, parse_condition
from chat_agent.agent.models import Priority, Step, Task, Workflow


class WorkflowDefinitionError(ValueError):
    """Agent definition document is missing required fields or is malformed."""


@dataclass(slots=True)
class AgentDefinition:
    """Validated agent definition document."""

    name: str
    description: str = ""
    tasks: list[Task] = field(default_factory=list)
    workflow: list[Task] = field(default_factory=list)
    parallel: bool = False
    settings: dict[str, Any] = field(default_factory=dict)

    @property
    def workflow_id(self) -> str:
        return _slug(self.name)

    def as_workflow(self) -> Workflow:
        return Workflow(id=self.workflow_id, tasks=list(self.workflow), parallel=self.parallel)

    def all_tasks(self) -> list[Task]:
        return [*self.workflow, *self.tasks]


def load_definition(path: Path, *, strict_conditions: bool = False) -> AgentDefinition:
    """Read and parse a definition document from disk."""

    if not path.exists():
        raise WorkflowDefinitionError(f"Configuration file not found: {path}")
    try:
        payload = json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as error:
        raise WorkflowDefinitionError(f"Invalid JSON in {path}: {error}") from error
    return parse_definition(payload, strict_conditions=strict_conditions)


def parse_definition(payload: Any, *, strict_conditions: bool = False) -> AgentDefinition:
    """Validate a decoded document and build tasks from it."""

    if not isinstance(payload, dict):
        raise WorkflowDefinitionError("Agent configuration must be a JSON object")
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        raise WorkflowDefinitionError("Agent configuration must have a name")
    if payload.get("tasks") is None and payload.get("workflow") is None:
        raise WorkflowDefinitionError("Agent configuration must have either tasks or workflow")

    settings = payload.get("settings") or {}
    if not isinstance(settings, dict):
        raise WorkflowDefinitionError("Settings must be an object")

    definition = AgentDefinition(
        name=name.strip(),
        description=str(payload.get("description") or ""),
        tasks=_parse_tasks(payload, "tasks", strict_conditions=strict_conditions),
        workflow=_parse_tasks(payload, "workflow", strict_conditions=strict_conditions),
        parallel=bool(payload.get("parallel", False)),
        settings=settings,
    )
    seen: set[str] = set()
    for task in definition.all_tasks():
        if task.id in seen:
            raise WorkflowDefinitionError(f"Duplicate task id: {task.id}")
        seen.add(task.id)
    return definition


def parse_task(raw: Any, *, default_id: str, strict_conditions: bool = False) -> Task:
    """Build one task from its document form."""

    if not isinstance(raw, dict):
        raise WorkflowDefinitionError(f"Task {default_id} must be an object")
    steps_raw = raw.get("steps")
    if not isinstance(steps_raw, list):
        raise WorkflowDefinitionError(f"Task {default_id} must have a steps array")

    priority_raw = raw.get("priority")
    priority = None
    if priority_raw is not None:
        try:
            priority = Priority(str(priority_raw).lower())
        except ValueError as error:
            raise WorkflowDefinitionError(
                f"Task {default_id} has invalid priority {priority_raw!r}",
            ) from error

    task_id = str(raw.get("id") or default_id)
    return Task(
        id=task_id,
        name=str(raw.get("name") or task_id),
        description=str(raw.get("description") or ""),
        steps=[
            parse_step(
                step,
                location=f"{task_id} step {index}",
                strict_conditions=strict_conditions,
            )
            for index, step in enumerate(steps_raw, start=1)
        ],
        continue_on_error=bool(raw.get("continueOnError", False)),
        priority=priority,
    )


def parse_step(raw: Any, *, location: str, strict_conditions: bool = False) -> Step:
    """Build one step, parsing its guard condition."""

    if not isinstance(raw, dict):
        raise WorkflowDefinitionError(f"{location} must be an object")
    tool = raw.get("tool")
    if not isinstance(tool, str) or not tool:
        raise WorkflowDefinitionError(f"{location} must name a tool")
    params = raw.get("params") or {}
    if not isinstance(params, dict):
        raise WorkflowDefinitionError(f"{location} params must be an object")

    condition_text = raw.get("condition")
    condition = None
    if condition_text is not None:
        try:
            condition = parse_condition(str(condition_text), strict=strict_conditions)
        except ConditionError as error:
            raise WorkflowDefinitionError(f"{location}: {error}") from error

    result_name = raw.get("resultName") or raw.get("name")
    return Step(
        tool_id=tool,
        params=dict(params),
        condition=condition,
        condition_text=str(condition_text) if condition_text is not None else None,
        continue_on_error=bool(raw.get("continueOnError", False)),
        result_name=str(result_name) if result_name else None,
    )


def _parse_tasks(
    payload: dict[str, Any],
    key: str,
    *,
    strict_conditions: bool,
) -> list[Task]:
    raw = payload.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise WorkflowDefinitionError(f"{key.capitalize()} must be an array")
    return [
        parse_task(item, default_id=f"{key}-{index}", strict_conditions=strict_conditions)
        for index, item in enumerate(raw, start=1)
    ]


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-") or "workflow"
