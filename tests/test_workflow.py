from __future__ import annotations

import asyncio

import allure
import pytest

from chat_agent.agent.models import Step, Task, Workflow
from chat_agent.agent.tools import ToolRegistry
from chat_agent.agent.workflow import WorkflowOrchestrator, execute_workflow

pytestmark = [
    allure.epic("Execution Engine"),
    allure.feature("Workflow Orchestration"),
]


def _echo_task(task_id: str, value, **kwargs) -> Task:
    return Task(
        id=task_id,
        name=task_id,
        steps=[Step("echo", {"value": value}, result_name=task_id)],
        **kwargs,
    )


def test_sequential_tasks_share_accumulated_context(spy_registry) -> None:
    tasks = [_echo_task("first", "one"), _echo_task("second", "{{first}}-two")]

    result = asyncio.run(execute_workflow(tasks, {"seed": True}, spy_registry))

    assert result.success is True
    assert [item.task_id for item in result.task_results] == ["first", "second"]
    assert result.context["first"] == "one"
    assert result.context["second"] == "one-two"
    assert result.context["seed"] is True


def test_sequential_stops_at_first_failed_task(spy_registry) -> None:
    tasks = [
        _echo_task("first", 1),
        Task(id="broken", name="broken", steps=[Step("fail")]),
        _echo_task("third", 3),
    ]

    result = asyncio.run(execute_workflow(tasks, {}, spy_registry))

    assert result.success is False
    assert [item.task_id for item in result.task_results] == ["first", "broken"]
    assert "third" not in result.context


def test_task_continue_on_error_keeps_workflow_going(spy_registry) -> None:
    tasks = [
        Task(id="broken", name="broken", steps=[Step("fail")], continue_on_error=True),
        _echo_task("after", "ran"),
    ]

    result = asyncio.run(execute_workflow(tasks, {}, spy_registry))

    assert result.success is True
    assert result.task_results[0].success is False
    assert result.context["after"] == "ran"


def test_parallel_tasks_start_from_initial_context() -> None:
    async def _slow(params):
        await asyncio.sleep(params["delay"])
        return params["value"]

    registry = ToolRegistry()
    registry.register("slow", _slow)
    tasks = [
        Task(
            id="a",
            name="a",
            steps=[Step("slow", {"delay": 0.02, "value": "A"}, result_name="a")],
        ),
        Task(
            id="b",
            name="b",
            steps=[Step("slow", {"delay": 0.0, "value": "{{a}}"}, result_name="b")],
        ),
    ]
    workflow = Workflow(id="fan-out", tasks=tasks, parallel=True)

    result = asyncio.run(WorkflowOrchestrator(registry).execute(workflow, {"base": 1}))

    assert result.success is True
    assert [item.task_id for item in result.task_results] == ["a", "b"]
    assert result.context["a"] == "A"
    assert result.context["b"] == "{{a}}"
    assert result.context["base"] == 1
    assert result.context["slow"] == "A"


def test_parallel_failure_stops_new_launches() -> None:
    started = []

    async def _track(params):
        started.append(params["name"])
        await asyncio.sleep(0)
        if params.get("fail"):
            raise RuntimeError("nope")
        return params["name"]

    registry = ToolRegistry()
    registry.register("track", _track)
    tasks = [
        Task(id="bad", name="bad", steps=[Step("track", {"name": "bad", "fail": True})]),
        Task(id="late", name="late", steps=[Step("track", {"name": "late"})]),
    ]

    result = asyncio.run(
        execute_workflow(tasks, {}, registry, parallel=True, max_concurrency=1),
    )

    assert result.success is False
    assert started == ["bad"]
    assert [item.task_id for item in result.task_results] == ["bad"]


def test_max_concurrency_must_be_positive() -> None:
    with pytest.raises(ValueError, match="max_concurrency"):
        WorkflowOrchestrator(ToolRegistry(), max_concurrency=0)


def test_empty_workflow_succeeds(spy_registry) -> None:
    result = asyncio.run(execute_workflow([], {"x": 1}, spy_registry, parallel=True))

    assert result.success is True
    assert result.task_results == []
    assert result.context == {"x": 1}


def _staggered_registry() -> ToolRegistry:
    async def _after(params):
        await asyncio.sleep(params["delay"])
        if params.get("fail"):
            raise RuntimeError("nope")
        return params["value"]

    registry = ToolRegistry()
    registry.register("after", _after)
    return registry


def _staggered_task(task_id: str, delay: float, value=None, **params) -> Task:
    return Task(
        id=task_id,
        name=task_id,
        steps=[Step("after", {"delay": delay, "value": value, **params}, result_name="x")],
    )


def test_parallel_last_finisher_wins_even_when_rewriting_initial_value() -> None:
    # "late" writes back the very object already in the initial context
    registry = _staggered_registry()
    tasks = [_staggered_task("early", 0.0, 7), _staggered_task("late", 0.05, 5)]

    result = asyncio.run(execute_workflow(tasks, {"x": 5}, registry, parallel=True))

    assert result.success is True
    assert result.context["x"] == 5
    assert result.task_results[1].written == {"after": 5, "x": 5}


def test_parallel_in_flight_siblings_finish_after_failure() -> None:
    registry = _staggered_registry()
    tasks = [
        _staggered_task("bad", 0.0, fail=True),
        _staggered_task("slow", 0.05, "done"),
    ]

    result = asyncio.run(execute_workflow(tasks, {}, registry, parallel=True))

    assert result.success is False
    assert [item.task_id for item in result.task_results] == ["bad", "slow"]
    assert [item.success for item in result.task_results] == [False, True]
    assert result.context["x"] == "done"
