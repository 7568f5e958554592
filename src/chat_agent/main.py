"""CLI entrypoint for chat-agent."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from chat_agent import __version__
from chat_agent.agent.controllers import (
    AgentCliController,
    AgentRunCommand,
    AgentValidateCommand,
    ChatCommand,
    QueueRunCommand,
)
from chat_agent.agent.scheduler import SchedulerError
from chat_agent.llm.client import LlmError

click.rich_click.USE_MARKDOWN = True
AGENT_CONTROLLER = AgentCliController()

_DOCUMENT_ARGUMENT = click.argument(
    "document",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
)
_VARIABLE_OPTION = click.option(
    "--set",
    "variables",
    multiple=True,
    help="Initial context value as KEY=VALUE (JSON values are decoded). Can be repeated.",
)


@click.group()
@click.version_option(version=__version__, prog_name="chat-agent")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def chat_agent(verbose: bool) -> None:
    """Chat with LLM backends and run declarative tool workflows."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@chat_agent.command("chat")
@click.argument("prompt")
@click.option("--model", default=None, help="Model override for this request.")
@click.option("--system-prompt", default=None, help="System prompt override.")
def chat(prompt: str, model: str | None, system_prompt: str | None) -> None:
    """Send one prompt to the configured chat backend and print the reply."""

    with _user_errors():
        lines = AGENT_CONTROLLER.chat(
            ChatCommand(prompt=prompt, model=model, system_prompt=system_prompt),
        )
    _emit_lines(lines)


@chat_agent.group()
def agent() -> None:
    """Agent definition commands."""


@agent.command("run")
@_DOCUMENT_ARGUMENT
@click.option(
    "--query",
    default="",
    help="User query; stored in context and used for LLM task selection.",
)
@_VARIABLE_OPTION
@click.option(
    "--parallel/--sequential",
    default=None,
    help="Override the document's workflow execution mode.",
)
def agent_run(
    document: Path,
    query: str,
    variables: tuple[str, ...],
    parallel: bool | None,
) -> None:
    """Run the workflow of an agent definition, or an LLM-selected task."""

    with _user_errors():
        result = AGENT_CONTROLLER.run(
            AgentRunCommand(
                document=document,
                query=query,
                variables=variables,
                parallel=parallel,
            ),
        )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Agent run failed.")


@agent.command("validate")
@_DOCUMENT_ARGUMENT
def agent_validate(document: Path) -> None:
    """Load an agent definition and list its tasks and steps."""

    with _user_errors():
        lines = AGENT_CONTROLLER.validate(AgentValidateCommand(document=document))
    _emit_lines(lines)


@agent.command("tools")
def agent_tools() -> None:
    """List built-in tools by category."""

    _emit_lines(AGENT_CONTROLLER.list_tools())


@chat_agent.group()
def queue() -> None:
    """Priority task queue commands."""


@queue.command("run")
@_DOCUMENT_ARGUMENT
@click.option(
    "--priority",
    type=click.Choice(["high", "normal", "low"], case_sensitive=False),
    default="normal",
    show_default=True,
    help="Priority for tasks that do not declare one.",
)
@_VARIABLE_OPTION
@click.option(
    "--max-tasks",
    type=click.IntRange(min=1),
    default=None,
    help="Optional cap for processed attempts.",
)
def queue_run(
    document: Path,
    priority: str,
    variables: tuple[str, ...],
    max_tasks: int | None,
) -> None:
    """Enqueue every task of a definition and drain the queue with retries."""

    with _user_errors():
        result = AGENT_CONTROLLER.run_queue(
            QueueRunCommand(
                document=document,
                priority=priority,
                variables=variables,
                max_tasks=max_tasks,
            ),
        )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Some tasks failed permanently.")


@contextmanager
def _user_errors() -> Iterator[None]:
    """Turn configuration and backend errors into clean CLI failures."""

    try:
        yield
    except (LlmError, SchedulerError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    chat_agent()
