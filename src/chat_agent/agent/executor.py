"""Step and task execution against a run-scoped context."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

from chat_agent.agent.expressions import resolve_params
from chat_agent.agent.models import Step, StepResult, StepStatus, Task, TaskResult
from chat_agent.agent.tools import ToolRegistry

logger = logging.getLogger(__name__)


async def execute_step(
    step: Step,
    context: Mapping[str, Any],
    registry: ToolRegistry,
) -> StepResult:
    """Run one step: evaluate its guard, resolve params, and invoke the tool.

    Tool failures are captured in the returned result, never raised. The
    context is only read here; writing step output is the task executor's job.
    """

    if step.condition is not None and not step.condition.evaluate(context):
        logger.debug("Skipping %s: condition %s not met", step.tool_id, step.condition)
        return StepResult(status=StepStatus.SKIPPED, tool_id=step.tool_id)

    params = resolve_params(step.params, context)
    started = time.monotonic()
    try:
        value = await registry.invoke(step.tool_id, params)
    except Exception as error:  # noqa: BLE001
        return StepResult(
            status=StepStatus.FAILED,
            tool_id=step.tool_id,
            error_message=str(error) or type(error).__name__,
            duration_ms=_elapsed_ms(started),
        )
    return StepResult(
        status=StepStatus.SUCCESS,
        tool_id=step.tool_id,
        value=value,
        duration_ms=_elapsed_ms(started),
    )


async def execute_task(
    task: Task,
    context: Mapping[str, Any],
    registry: ToolRegistry,
) -> TaskResult:
    """Run a task's steps in order on a private copy of ``context``."""

    task_context = dict(context)
    written: dict[str, Any] = {}
    step_results: list[StepResult] = []

    for index, step in enumerate(task.steps, start=1):
        result = await execute_step(step, task_context, registry)
        step_results.append(result)

        if result.status == StepStatus.SUCCESS:
            outputs = {step.tool_id: result.value}
            if step.result_name:
                outputs[step.result_name] = result.value
            written.update(outputs)
            task_context.update(outputs)
        elif result.status == StepStatus.FAILED:
            if not step.continue_on_error:
                logger.warning(
                    "Task %s aborted at step %s (%s): %s",
                    task.name,
                    index,
                    step.tool_id,
                    result.error_message,
                )
                break
            logger.info(
                "Task %s continuing past failed step %s (%s): %s",
                task.name,
                index,
                step.tool_id,
                result.error_message,
            )

    success = all(result.status != StepStatus.FAILED for result in step_results)
    return TaskResult(
        task_id=task.id,
        success=success,
        step_results=step_results,
        context=task_context,
        written=written,
    )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
