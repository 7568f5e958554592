"""Controllers for chat, agent, and queue CLI commands."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from chat_agent.agent.builtin_tools import build_default_registry
from chat_agent.agent.loader import AgentDefinition, load_definition
from chat_agent.agent.models import Priority, StepStatus, TaskResult
from chat_agent.agent.scheduler import TaskScheduler
from chat_agent.agent.selection import AgentRunResult, ChatFunction, run_agent
from chat_agent.agent.worker import SchedulerWorker
from chat_agent.config import Settings
from chat_agent.llm.client import ChatMessage, LlmClient

_PREVIEW_CHARS = 200


@dataclass(slots=True)
class ChatCommand:
    """CLI input for a single chat completion."""

    prompt: str
    model: str | None
    system_prompt: str | None


@dataclass(slots=True)
class AgentRunCommand:
    """CLI input for running an agent definition."""

    document: Path
    query: str
    variables: tuple[str, ...]
    parallel: bool | None = None


@dataclass(slots=True)
class AgentValidateCommand:
    """CLI input for definition validation."""

    document: Path


@dataclass(slots=True)
class QueueRunCommand:
    """CLI input for enqueueing a definition's tasks and draining the queue."""

    document: Path
    priority: str
    variables: tuple[str, ...]
    max_tasks: int | None = None


@dataclass(slots=True)
class CommandResult:
    """Report lines plus overall outcome for CLI rendering."""

    lines: list[str]
    success: bool


class AgentCliController:
    """Coordinates chat, agent execution, and queue CLI operations."""

    def chat(self, command: ChatCommand) -> list[str]:
        settings = Settings.from_env()
        settings.validate_for_chat()
        system_prompt = command.system_prompt or settings.agent.system_prompt
        messages = [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=command.prompt),
        ]
        with LlmClient(settings.llm) as client:
            reply = client.chat(messages, model=command.model)
        return [reply.content]

    def list_tools(self) -> list[str]:
        registry = build_default_registry()
        lines = [f"Tools: {len(registry.names())}"]
        for category, names in registry.by_category().items():
            lines.append(f"  {category}:")
            for name in names:
                spec = registry.get(name)
                description = spec.description if spec is not None else ""
                lines.append(f"    {name} - {description}" if description else f"    {name}")
        return lines

    def validate(self, command: AgentValidateCommand) -> list[str]:
        settings = Settings.from_env()
        definition = load_definition(
            command.document,
            strict_conditions=settings.agent.strict_conditions,
        )
        lines = [
            f"Agent: {definition.name}",
            f"Workflow tasks: {len(definition.workflow)} "
            f"({'parallel' if definition.parallel else 'sequential'})",
            f"Selectable tasks: {len(definition.tasks)}",
        ]
        for task in definition.all_tasks():
            lines.append(f"  {task.id} name={task.name} steps={len(task.steps)}")
            for index, step in enumerate(task.steps, start=1):
                guard = f" if {step.condition_text}" if step.condition_text else ""
                lines.append(f"    {index}. {step.tool_id}{guard}")
        return lines

    def run(self, command: AgentRunCommand) -> CommandResult:
        settings = Settings.from_env()
        definition = load_definition(
            command.document,
            strict_conditions=settings.agent.strict_conditions,
        )
        if command.parallel is not None:
            definition.parallel = command.parallel
        variables = parse_variables(command.variables)
        registry = build_default_registry()

        with _chat_function(settings, definition) as chat:
            result = asyncio.run(
                run_agent(
                    definition,
                    command.query,
                    registry,
                    chat=chat,
                    extra_context=variables,
                ),
            )
        return CommandResult(lines=render_agent_result(definition, result), success=result.success)

    def run_queue(self, command: QueueRunCommand) -> CommandResult:
        settings = Settings.from_env()
        settings.validate()
        definition = load_definition(
            command.document,
            strict_conditions=settings.agent.strict_conditions,
        )
        default_priority = Priority(command.priority.lower())
        scheduler = TaskScheduler(settings.scheduler)
        for task in definition.all_tasks():
            scheduler.enqueue(task, task.priority or default_priority)

        worker = SchedulerWorker(
            scheduler=scheduler,
            registry=build_default_registry(),
            initial_context=parse_variables(command.variables),
        )
        summary = worker.run_loop(max_tasks=command.max_tasks)
        stats = scheduler.get_stats()

        lines = [
            "Worker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} retried={summary.retried}",
            "Queue stats: "
            f"total={stats.total} pending={stats.pending} queued={stats.queued} "
            f"running={stats.running} completed={stats.completed} failed={stats.failed}",
        ]
        for record in scheduler.list_records():
            lines.append(
                f"  {record.task_id} name={record.task.name} priority={record.priority.value} "
                f"state={record.state.value} attempts={record.attempts} "
                f"error={record.error or '-'}",
            )
        return CommandResult(lines=lines, success=stats.failed == 0)


def parse_variables(values: tuple[str, ...]) -> dict[str, Any]:
    """Parse ``KEY=VALUE`` pairs; values are decoded as JSON when possible."""

    variables: dict[str, Any] = {}
    for item in values:
        if "=" not in item:
            raise ValueError(f"Invalid variable {item!r}. Expected format KEY=VALUE.")
        key, raw = item.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"Invalid variable {item!r}. Key must be non-empty.")
        try:
            variables[key] = json.loads(raw)
        except json.JSONDecodeError:
            variables[key] = raw
    return variables


def render_agent_result(definition: AgentDefinition, result: AgentRunResult) -> list[str]:
    """Every task and step outcome, then the final context."""

    lines = [f"Agent: {definition.name}", f"Success: {'yes' if result.success else 'no'}"]
    if result.selected_task is not None:
        lines.append(f"Selected task: {result.selected_task.name}")
    if result.error:
        lines.append(f"Error: {result.error}")
    for task_result in result.task_results:
        lines.extend(render_task_result(task_result))
    if result.context:
        lines.append("Context:")
        for key, value in result.context.items():
            lines.append(f"  {key} = {_preview(value)}")
    return lines


def render_task_result(task_result: TaskResult) -> list[str]:
    lines = [f"Task {task_result.task_id}: {'ok' if task_result.success else 'failed'}"]
    for index, step in enumerate(task_result.step_results, start=1):
        line = f"  {index}. {step.tool_id} {step.status.value}"
        if step.status == StepStatus.SUCCESS:
            line += f" -> {_preview(step.value)}"
        elif step.status == StepStatus.FAILED:
            line += f": {step.error_message}"
        lines.append(line)
    return lines


@contextmanager
def _chat_function(
    settings: Settings,
    definition: AgentDefinition,
) -> Iterator[ChatFunction | None]:
    if definition.workflow or not definition.tasks:
        yield None
        return
    settings.validate_for_chat()
    with LlmClient(settings.llm) as client:
        yield lambda messages: client.chat(messages).content


def _preview(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    text = text.replace("\n", "\\n")
    if len(text) <= _PREVIEW_CHARS:
        return text
    return text[:_PREVIEW_CHARS] + "..."
