"""Agent entry point: run a definition's workflow or let the LLM pick a task."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from chat_agent.agent.executor import execute_task
from chat_agent.agent.loader import AgentDefinition
from chat_agent.agent.models import Task, TaskResult, WorkflowResult
from chat_agent.agent.tools import ToolRegistry
from chat_agent.agent.workflow import WorkflowOrchestrator
from chat_agent.llm.client import ChatMessage, LlmError

logger = logging.getLogger(__name__)

# Blocking chat call; run_agent moves it off the event loop.
ChatFunction = Callable[[list[ChatMessage]], str]

SELECTION_SYSTEM_PROMPT = (
    "You are a helpful task selection assistant. Reply with only the task number."
)


@dataclass(slots=True)
class AgentRunResult:
    """Outcome of one agent invocation."""

    success: bool
    workflow_result: WorkflowResult | None = None
    task_result: TaskResult | None = None
    selected_task: Task | None = None
    error: str | None = None

    @property
    def task_results(self) -> list[TaskResult]:
        if self.workflow_result is not None:
            return self.workflow_result.task_results
        if self.task_result is not None:
            return [self.task_result]
        return []

    @property
    def context(self) -> dict[str, Any]:
        if self.workflow_result is not None:
            return self.workflow_result.context
        if self.task_result is not None:
            return self.task_result.context
        return {}


def build_selection_prompt(query: str, tasks: list[Task]) -> str:
    """Numbered task menu for the selection request."""

    menu = "\n".join(
        f"{index}. {task.name}: {task.description or 'No description'}"
        for index, task in enumerate(tasks, start=1)
    )
    return (
        f'Given the user query: "{query}"\n\n'
        f"Available tasks:\n{menu}\n\n"
        "Which task number should be executed? Reply with just the number."
    )


def parse_selection(reply: str, task_count: int) -> int | None:
    """Zero-based task index from the LLM reply, or None when unusable."""

    match = re.search(r"-?\d+", reply)
    if match is None:
        return None
    index = int(match.group(0)) - 1
    if 0 <= index < task_count:
        return index
    return None


async def run_agent(
    definition: AgentDefinition,
    query: str,
    registry: ToolRegistry,
    *,
    chat: ChatFunction | None = None,
    extra_context: Mapping[str, Any] | None = None,
) -> AgentRunResult:
    """Run the definition's workflow, or ask ``chat`` which task matches ``query``."""

    context: dict[str, Any] = {
        "query": query,
        "timestamp": datetime.now(tz=UTC).isoformat(),
        **dict(extra_context or {}),
    }

    if definition.workflow:
        orchestrator = WorkflowOrchestrator(registry)
        workflow_result = await orchestrator.execute(definition.as_workflow(), context)
        return AgentRunResult(success=workflow_result.success, workflow_result=workflow_result)

    if not definition.tasks:
        return AgentRunResult(success=False, error="No workflow or tasks to execute")
    if chat is None:
        return AgentRunResult(success=False, error="Task selection requires an LLM backend")

    messages = [
        ChatMessage(role="system", content=SELECTION_SYSTEM_PROMPT),
        ChatMessage(role="user", content=build_selection_prompt(query, definition.tasks)),
    ]
    try:
        reply = await asyncio.to_thread(chat, messages)
    except LlmError as error:
        logger.warning("Task selection failed: %s", error)
        return AgentRunResult(success=False, error=f"Task selection failed: {error}")

    index = parse_selection(reply, len(definition.tasks))
    if index is None:
        return AgentRunResult(
            success=False,
            error=f"LLM reply did not select a valid task: {reply.strip()!r}",
        )

    selected = definition.tasks[index]
    logger.info("LLM selected task: %s", selected.name)
    task_result = await execute_task(selected, context, registry)
    return AgentRunResult(
        success=task_result.success,
        task_result=task_result,
        selected_task=selected,
    )
