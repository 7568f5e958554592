"""In-memory priority task queue with bounded, backoff-based retries.

Records move ``pending -> queued -> running -> completed | failed``. A failed
attempt with retry budget left goes ``running -> queued`` in its original tier
and becomes ready again after an exponential backoff delay. Task-level failures
are recorded on the record; only contract violations raise.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from chat_agent.agent.models import (
    Priority,
    QueueStats,
    Task,
    TaskRecord,
    TaskResult,
    TaskState,
)
from chat_agent.config import SchedulerSettings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class SchedulerError(RuntimeError):
    """Scheduler operation violated its calling contract."""


class UnknownTaskError(SchedulerError):
    """No record exists for the given task id."""


class InvalidTransitionError(SchedulerError):
    """Requested state change is not allowed from the record's current state."""


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class TaskScheduler:
    """Priority queue of task records.

    Each mutating operation runs under one lock, so callers never observe a
    half-applied transition.
    """

    def __init__(
        self,
        settings: SchedulerSettings | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings or SchedulerSettings()
        self._clock = clock
        self._records: dict[str, TaskRecord] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def enqueue(self, task: Task, priority: Priority | str = Priority.NORMAL) -> str:
        """Create a record for ``task`` and queue it; returns the task id."""

        tier = Priority(priority)
        with self._lock:
            if task.id in self._records:
                raise SchedulerError(f"Task already enqueued: {task.id}")
            now = self._clock()
            record = TaskRecord(
                task=task,
                priority=tier,
                sequence=next(self._sequence),
                created_at=now,
                available_at=now,
            )
            self._records[task.id] = record
            self._transition(record, TaskState.PENDING, TaskState.QUEUED)
        logger.debug("Enqueued task %s (%s) priority=%s", task.id, task.name, tier.value)
        return task.id

    def batch_enqueue(
        self,
        tasks: Iterable[Task],
        priority: Priority | str = Priority.NORMAL,
    ) -> list[str]:
        """Enqueue several tasks; same as calling ``enqueue`` for each."""

        return [self.enqueue(task, priority) for task in tasks]

    def dequeue_next(self) -> TaskRecord | None:
        """Claim the highest-priority ready record, FIFO within a tier."""

        with self._lock:
            now = self._clock()
            ready = [
                record
                for record in self._records.values()
                if record.state == TaskState.QUEUED and record.available_at <= now
            ]
            if not ready:
                return None
            record = min(ready, key=lambda item: (item.priority.rank, item.sequence))
            self._transition(record, TaskState.QUEUED, TaskState.RUNNING)
            return record

    def batch_dequeue(self, count: int) -> list[TaskRecord]:
        """Claim up to ``count`` records; same as repeated ``dequeue_next``."""

        claimed: list[TaskRecord] = []
        for _ in range(count):
            record = self.dequeue_next()
            if record is None:
                break
            claimed.append(record)
        return claimed

    def complete(self, task_id: str, result: TaskResult | None = None) -> TaskRecord:
        """Mark a running record as completed."""

        with self._lock:
            record = self._get(task_id)
            self._transition(record, TaskState.RUNNING, TaskState.COMPLETED)
            record.result = result
        logger.debug("Task %s completed after %s failed attempts", task_id, record.attempts)
        return record

    def fail(
        self,
        task_id: str,
        error: str,
        result: TaskResult | None = None,
    ) -> TaskRecord:
        """Record a failed attempt; requeue with backoff or fail terminally."""

        with self._lock:
            record = self._get(task_id)
            if record.state != TaskState.RUNNING:
                raise InvalidTransitionError(
                    f"Cannot fail task {task_id} in state {record.state.value}",
                )
            record.attempts += 1
            record.error = error
            record.result = result
            if record.attempts < self.settings.max_retries:
                delay = self.retry_delay_seconds(record.attempts)
                record.available_at = self._clock() + timedelta(seconds=delay)
                self._transition(record, TaskState.RUNNING, TaskState.QUEUED)
                logger.info(
                    "Task %s failed (attempt %s/%s), retry in %.2fs: %s",
                    task_id,
                    record.attempts,
                    self.settings.max_retries,
                    delay,
                    error,
                )
            else:
                self._transition(record, TaskState.RUNNING, TaskState.FAILED)
                logger.warning(
                    "Task %s failed permanently after %s attempts: %s",
                    task_id,
                    record.attempts,
                    error,
                )
        return record

    def retry_delay_seconds(self, attempts: int) -> float:
        """Backoff delay after the ``attempts``-th failure."""

        return min(
            self.settings.retry_max_seconds,
            self.settings.retry_base_seconds * (2 ** max(attempts - 1, 0)),
        )

    def get(self, task_id: str) -> TaskRecord:
        with self._lock:
            return self._get(task_id)

    def list_records(self, state: TaskState | None = None) -> list[TaskRecord]:
        """Records in insertion order, optionally filtered by state."""

        with self._lock:
            records = sorted(self._records.values(), key=lambda item: item.sequence)
        if state is None:
            return records
        return [record for record in records if record.state == state]

    def next_ready_in(self) -> float | None:
        """Seconds until the next queued record becomes ready; None when nothing is queued."""

        with self._lock:
            queued = [
                record.available_at
                for record in self._records.values()
                if record.state == TaskState.QUEUED
            ]
            if not queued:
                return None
            return max((min(queued) - self._clock()).total_seconds(), 0.0)

    def get_stats(self) -> QueueStats:
        """Counts of records per state."""

        with self._lock:
            stats = QueueStats(total=len(self._records))
            for record in self._records.values():
                field_name = record.state.value
                setattr(stats, field_name, getattr(stats, field_name) + 1)
            return stats

    def _get(self, task_id: str) -> TaskRecord:
        record = self._records.get(task_id)
        if record is None:
            raise UnknownTaskError(f"Unknown task id: {task_id}")
        return record

    def _transition(self, record: TaskRecord, expected: TaskState, target: TaskState) -> None:
        if record.state != expected:
            raise InvalidTransitionError(
                f"Task {record.task_id} cannot move {record.state.value} -> {target.value}",
            )
        record.state = target
