from __future__ import annotations

import asyncio

import allure

from chat_agent.agent.builtin_tools import build_default_registry
from chat_agent.agent.executor import execute_step, execute_task
from chat_agent.agent.expressions import parse_condition
from chat_agent.agent.models import Step, StepStatus, Task

pytestmark = [
    allure.epic("Execution Engine"),
    allure.feature("Step & Task Execution"),
]


def test_calculate_step_writes_result_under_tool_id() -> None:
    task = Task(id="t1", name="math", steps=[Step("calculate", {"expression": "2+2"})])

    result = asyncio.run(execute_task(task, {}, build_default_registry()))

    assert result.success is True
    assert result.context["calculate"] == 4
    assert result.step_results[0].status == StepStatus.SUCCESS


def test_false_guard_skips_step_without_invoking_tool(spy_registry) -> None:
    spy_registry.add("writeFile", lambda params: "written")
    step = Step(
        "writeFile",
        {"path": "{{outDir}}/x.txt"},
        condition=parse_condition("count > 10"),
        condition_text="count > 10",
    )
    context = {"count": 5}

    result = asyncio.run(execute_step(step, context, spy_registry))

    assert result.status == StepStatus.SKIPPED
    assert spy_registry.called("writeFile") == 0
    assert context == {"count": 5}


def test_skipped_step_leaves_task_context_unchanged(spy_registry) -> None:
    task = Task(
        id="t1",
        name="guarded",
        steps=[Step("echo", {"value": 1}, condition=parse_condition("ready == yes"))],
    )

    result = asyncio.run(execute_task(task, {"ready": "no"}, spy_registry))

    assert result.success is True
    assert result.context == {"ready": "no"}
    assert spy_registry.calls == []


def test_failed_step_stops_task(spy_registry) -> None:
    task = Task(id="t1", name="broken", steps=[Step("fail"), Step("echo", {"value": 1})])

    result = asyncio.run(execute_task(task, {}, spy_registry))

    assert result.success is False
    assert len(result.step_results) == 1
    assert result.step_results[0].status == StepStatus.FAILED
    assert result.step_results[0].error_message == "boom"
    assert spy_registry.called("echo") == 0


def test_continue_on_error_runs_later_steps_but_task_still_fails(spy_registry) -> None:
    task = Task(
        id="t1",
        name="tolerant",
        steps=[Step("fail", continue_on_error=True), Step("echo", {"value": "after"})],
    )

    result = asyncio.run(execute_task(task, {}, spy_registry))

    assert [step.status for step in result.step_results] == [
        StepStatus.FAILED,
        StepStatus.SUCCESS,
    ]
    assert result.context["echo"] == "after"
    assert result.success is False


def test_unknown_tool_is_captured_as_failure() -> None:
    result = asyncio.run(execute_step(Step("nope"), {}, build_default_registry()))

    assert result.status == StepStatus.FAILED
    assert result.error_message == "Unknown tool: nope"


def test_later_steps_read_earlier_outputs(spy_registry) -> None:
    task = Task(
        id="t1",
        name="chain",
        steps=[
            Step("echo", {"value": "hello"}, result_name="greeting"),
            Step("upper", {"text": "{{greeting}} world"}),
        ],
    )

    result = asyncio.run(execute_task(task, {}, spy_registry))

    assert result.context["greeting"] == "hello"
    assert result.context["echo"] == "hello"
    assert result.context["upper"] == "HELLO WORLD"
    assert spy_registry.calls[1] == ("upper", {"text": "hello world"})


def test_task_does_not_mutate_caller_context(spy_registry) -> None:
    context = {"seed": 1}
    task = Task(id="t1", name="echo", steps=[Step("echo", {"value": "{{seed}}"})])

    result = asyncio.run(execute_task(task, context, spy_registry))

    assert context == {"seed": 1}
    assert result.context == {"seed": 1, "echo": "1"}


def test_placeholders_render_text_so_strict_guards_see_strings(spy_registry) -> None:
    task = Task(
        id="t1",
        name="typed",
        steps=[
            Step("echo", {"value": "{{n}}"}),
            Step("upper", {"text": "strict"}, condition=parse_condition("echo === 5")),
            Step("upper", {"text": "loose"}, condition=parse_condition("echo == 5")),
        ],
    )

    result = asyncio.run(execute_task(task, {"n": 5}, spy_registry))

    assert result.context["echo"] == "5"
    assert [step.status for step in result.step_results] == [
        StepStatus.SUCCESS,
        StepStatus.SKIPPED,
        StepStatus.SUCCESS,
    ]
    assert result.context["upper"] == "LOOSE"


def test_any_registry_failure_is_captured() -> None:
    class _DownRegistry:
        async def invoke(self, tool_id, params):
            raise RuntimeError("backend down")

    result = asyncio.run(execute_step(Step("anything"), {}, _DownRegistry()))

    assert result.status == StepStatus.FAILED
    assert result.error_message == "backend down"


def test_written_holds_only_step_outputs(spy_registry) -> None:
    task = Task(
        id="t1",
        name="outputs",
        steps=[Step("echo", {"value": "a"}, result_name="first"), Step("fail")],
    )

    result = asyncio.run(execute_task(task, {"seed": 1}, spy_registry))

    assert result.written == {"echo": "a", "first": "a"}
    assert result.context == {"seed": 1, "echo": "a", "first": "a"}
