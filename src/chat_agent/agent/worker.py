"""Scheduling loop that drains a task scheduler one record at a time."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from chat_agent.agent.executor import execute_task
from chat_agent.agent.models import StepStatus, TaskResult, TaskState
from chat_agent.agent.scheduler import TaskScheduler
from chat_agent.agent.tools import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    retried: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.retried += other.retried
        self.idle_polls += other.idle_polls


class SchedulerWorker:
    """Claims queued records, executes their tasks, and reports outcomes back."""

    def __init__(
        self,
        *,
        scheduler: TaskScheduler,
        registry: ToolRegistry,
        initial_context: Mapping[str, Any] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.scheduler = scheduler
        self.registry = registry
        self.initial_context = dict(initial_context or {})
        self._sleep = sleep
        self._stop_requested = False

    def request_stop(self) -> None:
        """Stop claiming new records; the current one still finishes."""

        self._stop_requested = True

    def run_once(self) -> WorkerRunSummary:
        """Process at most one record from the queue."""

        summary = WorkerRunSummary()
        if self._stop_requested:
            summary.idle_polls = 1
            return summary

        record = self.scheduler.dequeue_next()
        if record is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        logger.info(
            "Running task %s (%s) attempt %s",
            record.task_id,
            record.task.name,
            record.attempts + 1,
        )
        result = asyncio.run(execute_task(record.task, self.initial_context, self.registry))
        if result.success:
            self.scheduler.complete(record.task_id, result)
            summary.succeeded = 1
            return summary

        updated = self.scheduler.fail(record.task_id, failure_summary(result), result)
        if updated.state == TaskState.QUEUED:
            summary.retried = 1
        else:
            summary.failed = 1
        return summary

    def run_loop(self, *, max_tasks: int | None = None) -> WorkerRunSummary:
        """Run until the queue is drained, a stop is requested, or max_tasks is reached.

        Records waiting out a retry backoff are slept for rather than skipped.
        """

        aggregate = WorkerRunSummary()
        while True:
            if self._stop_requested:
                return aggregate
            if max_tasks is not None and aggregate.processed >= max_tasks:
                return aggregate

            summary = self.run_once()
            aggregate.add(summary)
            if summary.processed:
                continue

            wait_seconds = self.scheduler.next_ready_in()
            if wait_seconds is None:
                return aggregate
            logger.debug("Waiting %.2fs for retry backoff", wait_seconds)
            self._sleep(wait_seconds)


def failure_summary(result: TaskResult) -> str:
    """Human-readable error for the first failed step of a task result."""

    for index, step_result in enumerate(result.step_results, start=1):
        if step_result.status == StepStatus.FAILED:
            return f"step {index} ({step_result.tool_id}): {step_result.error_message}"
    return "task failed"
