"""Workflow orchestration: sequential or fan-out/fan-in execution of tasks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from chat_agent.agent.executor import execute_task
from chat_agent.agent.models import Task, TaskResult, Workflow, WorkflowResult
from chat_agent.agent.tools import ToolRegistry

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Runs the tasks of a workflow and merges their contexts.

    Sequential workflows hand each task the context accumulated so far.
    Parallel workflows start every task from a copy of the initial context and
    merge the keys each task wrote in completion order, so when two tasks write
    the same key the one that finishes last wins.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        max_concurrency: int | None = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.registry = registry
        self.max_concurrency = max_concurrency

    async def execute(
        self,
        workflow: Workflow,
        initial_context: Mapping[str, Any] | None = None,
    ) -> WorkflowResult:
        """Execute ``workflow`` and return ordered task outcomes plus final context."""

        base_context = dict(initial_context or {})
        logger.info(
            "Starting workflow %s: %s tasks (%s)",
            workflow.id,
            len(workflow.tasks),
            "parallel" if workflow.parallel else "sequential",
        )
        if workflow.parallel:
            task_results, context = await self._run_parallel(workflow.tasks, base_context)
        else:
            task_results, context = await self._run_sequential(workflow.tasks, base_context)

        tolerant = {task.id for task in workflow.tasks if task.continue_on_error}
        success = all(result.success or result.task_id in tolerant for result in task_results)
        logger.info(
            "Workflow %s finished: success=%s tasks_run=%s",
            workflow.id,
            success,
            len(task_results),
        )
        return WorkflowResult(success=success, task_results=task_results, context=context)

    async def _run_sequential(
        self,
        tasks: Sequence[Task],
        context: dict[str, Any],
    ) -> tuple[list[TaskResult], dict[str, Any]]:
        task_results: list[TaskResult] = []
        for position, task in enumerate(tasks, start=1):
            result = await execute_task(task, context, self.registry)
            task_results.append(result)
            context.update(result.context)
            if not result.success and not task.continue_on_error:
                logger.warning(
                    "Workflow stopped at task %s/%s (%s)",
                    position,
                    len(tasks),
                    task.name,
                )
                break
        return task_results, context

    async def _run_parallel(
        self,
        tasks: Sequence[Task],
        base_context: dict[str, Any],
    ) -> tuple[list[TaskResult], dict[str, Any]]:
        context = dict(base_context)
        waiting = list(enumerate(tasks))
        in_flight: dict[asyncio.Task[TaskResult], int] = {}
        results: dict[int, TaskResult] = {}
        limit = self.max_concurrency or max(len(tasks), 1)
        stop_launching = False

        while waiting or in_flight:
            while waiting and not stop_launching and len(in_flight) < limit:
                index, task = waiting.pop(0)
                handle = asyncio.create_task(
                    execute_task(task, dict(base_context), self.registry),
                )
                in_flight[handle] = index
            if not in_flight:
                break

            done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for handle in sorted(done, key=in_flight.__getitem__):
                index = in_flight.pop(handle)
                result = handle.result()
                results[index] = result
                context.update(result.written)
                task = tasks[index]
                if not result.success and not task.continue_on_error and not stop_launching:
                    stop_launching = True
                    logger.warning(
                        "Task %s failed; no further parallel tasks will be launched",
                        task.name,
                    )

        return [results[index] for index in sorted(results)], context


async def execute_workflow(
    workflow: Workflow | Sequence[Task],
    initial_context: Mapping[str, Any] | None,
    registry: ToolRegistry,
    *,
    parallel: bool = False,
    max_concurrency: int | None = None,
) -> WorkflowResult:
    """Execute a workflow, or a bare task sequence wrapped into one."""

    if not isinstance(workflow, Workflow):
        workflow = Workflow(id="adhoc", tasks=list(workflow), parallel=parallel)
    orchestrator = WorkflowOrchestrator(registry, max_concurrency=max_concurrency)
    return await orchestrator.execute(workflow, initial_context)

