"""Domain models for agent steps, tasks, workflows, and the task queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from chat_agent.agent.expressions import Comparison


class StepStatus(str, Enum):
    """Outcome of one step execution."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class TaskState(str, Enum):
    """Queue lifecycle states of a task record."""

    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Priority(str, Enum):
    """Scheduling tiers, served high first."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.NORMAL: 1, Priority.LOW: 2}


@dataclass(slots=True)
class Step:
    """One tool invocation with its guard and failure policy."""

    tool_id: str
    params: dict[str, Any] = field(default_factory=dict)
    condition: Comparison | None = None
    condition_text: str | None = None
    continue_on_error: bool = False
    result_name: str | None = None


@dataclass(slots=True)
class Task:
    """Ordered sequence of steps forming one unit of work."""

    id: str
    name: str
    steps: list[Step] = field(default_factory=list)
    continue_on_error: bool = False
    description: str = ""
    priority: Priority | None = None


@dataclass(slots=True)
class Workflow:
    """Ordered or parallel sequence of tasks."""

    id: str
    tasks: list[Task] = field(default_factory=list)
    parallel: bool = False


@dataclass(slots=True)
class StepResult:
    """Typed outcome of one step."""

    status: StepStatus
    tool_id: str = ""
    value: Any = None
    error_message: str | None = None
    duration_ms: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "tool": self.tool_id,
            "value": _jsonable(self.value),
            "error": self.error_message,
            "duration_ms": self.duration_ms,
        }


@dataclass(slots=True)
class TaskResult:
    """Outcome of a task run.

    ``context`` is the task's full context after its last step; ``written`` holds
    only the values its steps produced.
    """

    task_id: str
    success: bool
    step_results: list[StepResult]
    context: dict[str, Any]
    written: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "success": self.success,
            "step_results": [result.to_dict() for result in self.step_results],
        }


@dataclass(slots=True)
class WorkflowResult:
    """Outcome of a workflow run."""

    success: bool
    task_results: list[TaskResult]
    context: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "task_results": [result.to_dict() for result in self.task_results],
            "context": {key: _jsonable(value) for key, value in self.context.items()},
        }


@dataclass(slots=True)
class TaskRecord:
    """A task bundled with its scheduling metadata."""

    task: Task
    priority: Priority
    sequence: int
    created_at: datetime
    available_at: datetime
    state: TaskState = TaskState.PENDING
    attempts: int = 0
    result: TaskResult | None = None
    error: str | None = None

    @property
    def task_id(self) -> str:
        return self.task.id


@dataclass(slots=True)
class QueueStats:
    """Read-only snapshot of scheduler record counts."""

    total: int = 0
    pending: int = 0
    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0


def _jsonable(value: Any) -> Any:
    if isinstance(value, (dict, list, str, int, float, bool, type(None))):
        return value
    return str(value)
