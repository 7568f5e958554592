from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest
import rich_click as click
from click.testing import CliRunner

from chat_agent import __version__
from chat_agent.agent.scheduler import SchedulerError
from chat_agent.main import _user_errors, chat_agent

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Agent & Queue Commands"),
]


def _write_document(tmp_path: Path, payload: dict) -> Path:
    path = tmp_path / "agent.json"
    path.write_text(json.dumps(payload), "utf-8")
    return path


def _report_document(tmp_path: Path) -> Path:
    return _write_document(
        tmp_path,
        {
            "name": "Report",
            "workflow": [
                {
                    "name": "compute",
                    "steps": [
                        {"tool": "calculate", "params": {"expression": "6*7"}},
                        {
                            "tool": "writeFile",
                            "params": {"path": "{{outDir}}/x.txt", "content": "{{calculate}}"},
                            "condition": "calculate > 10",
                        },
                        {
                            "tool": "writeFile",
                            "params": {"path": "{{outDir}}/never.txt", "content": "no"},
                            "condition": "calculate > 100",
                        },
                    ],
                },
            ],
        },
    )


def test_version_option() -> None:
    result = CliRunner().invoke(chat_agent, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_agent_tools_lists_builtin_tools() -> None:
    result = CliRunner().invoke(chat_agent, ["agent", "tools"])

    assert result.exit_code == 0, result.output
    assert "Tools: 17" in result.output
    assert "    calculate - Evaluate an arithmetic expression." in result.output


def test_agent_validate_lists_steps_and_guards(tmp_path: Path) -> None:
    result = CliRunner().invoke(chat_agent, ["agent", "validate", str(_report_document(tmp_path))])

    assert result.exit_code == 0, result.output
    assert "Agent: Report" in result.output
    assert "Workflow tasks: 1 (sequential)" in result.output
    assert "    2. writeFile if calculate > 10" in result.output


def test_agent_run_executes_workflow(tmp_path: Path) -> None:
    document = _report_document(tmp_path)

    result = CliRunner().invoke(
        chat_agent,
        ["agent", "run", str(document), "--set", f"outDir={tmp_path}"],
    )

    assert result.exit_code == 0, result.output
    assert "Success: yes" in result.output
    assert "  1. calculate success -> 42" in result.output
    assert "  3. writeFile skipped" in result.output
    assert (tmp_path / "x.txt").read_text("utf-8") == "42"
    assert not (tmp_path / "never.txt").exists()


def test_agent_run_reports_failed_workflow(tmp_path: Path) -> None:
    document = _write_document(
        tmp_path,
        {"name": "Broken", "workflow": [{"steps": [{"tool": "readFile", "params": {}}]}]},
    )

    result = CliRunner().invoke(chat_agent, ["agent", "run", str(document)])

    assert result.exit_code == 1
    assert "Success: no" in result.output
    assert "readFile failed: Parameter 'path' is required" in result.output


def test_agent_run_selects_task_in_demo_mode(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CHAT_AGENT_LLM_DEMO_MODE", "true")
    document = _write_document(
        tmp_path,
        {
            "name": "Selector",
            "tasks": [
                {
                    "name": "count",
                    "steps": [{"tool": "wordCount", "params": {"text": "{{query}}"}}],
                },
                {"name": "other", "steps": [{"tool": "getTimestamp"}]},
            ],
        },
    )

    result = CliRunner().invoke(chat_agent, ["agent", "run", str(document), "--query", "a b c"])

    assert result.exit_code == 0, result.output
    assert "Selected task: count" in result.output
    assert "  wordCount = 3" in result.output


def test_agent_run_rejects_invalid_document(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", "utf-8")

    result = CliRunner().invoke(chat_agent, ["agent", "run", str(path)])

    assert result.exit_code == 1
    assert "Invalid JSON" in result.output


def test_queue_run_drains_tasks_with_retries(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CHAT_AGENT_RETRY_BASE_SECONDS", "0")
    monkeypatch.setenv("CHAT_AGENT_RETRY_MAX_SECONDS", "0")
    document = _write_document(
        tmp_path,
        {
            "name": "Queue",
            "tasks": [
                {"id": "slow", "priority": "low", "steps": [{"tool": "getTimestamp"}]},
                {"id": "bad", "steps": [{"tool": "readFile", "params": {"path": "{{missing}}"}}]},
                {
                    "id": "fast",
                    "priority": "high",
                    "steps": [{"tool": "calculate", "params": {"expression": "1+1"}}],
                },
            ],
        },
    )

    result = CliRunner().invoke(chat_agent, ["queue", "run", str(document)])

    assert result.exit_code == 1
    assert "Worker summary: processed=5 succeeded=2 failed=1 retried=2" in result.output
    assert "total=3 pending=0 queued=0 running=0 completed=2 failed=1" in result.output
    assert "  bad name=bad priority=normal state=failed attempts=3" in result.output


def test_scheduler_errors_become_click_errors() -> None:
    with pytest.raises(click.ClickException, match="Task already enqueued: t"), _user_errors():
        raise SchedulerError("Task already enqueued: t")
