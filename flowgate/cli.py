"""CLI interface for FLOWGATE.

Typer-based command-line interface over the backlog:

    flowgate run TASK-ID [--force]     drive one task through its phases
    flowgate run --auto [--parallel N] drive ready tasks in scheduler order
    flowgate status [TASK-ID]          board by state, or one task in detail
    flowgate next                      ranked ready tasks and what blocks the rest
    flowgate breakpoint TASK-ID set|clear
    flowgate skip-github TASK-ID set|clear
    flowgate report TASK-ID accepted|rejected|failed
"""

from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from flowgate.config.manager import ConfigManager
from flowgate.config.settings import Settings
from flowgate.integrations.executor import ClaudeCodeExecutor
from flowgate.utils.console import (
    console,
    format_state,
    print_error,
    print_header,
    print_info,
    print_success,
    print_warning,
    show_version,
)
from flowgate.utils.errors import ExitCode, FlowgateError, UserCancelledError
from flowgate.utils.logging import setup_logging
from flowgate.workflow.dependencies import completed_task_ids
from flowgate.workflow.runner import WorkflowRunner, dependency_warnings
from flowgate.workflow.scheduler import ExclusionReason, Scheduler
from flowgate.workflow.states import STATE_ORDER, WorkflowState
from flowgate.workflow.store import MarkdownTaskStore
from flowgate.workflow.tasks import Task, dependents_of, find_task, tasks_by_state
from flowgate.workflow.transitions import PhaseOutcome, plan_dispatch

app = typer.Typer(
    name="flowgate",
    help="FLOWGATE - Phase-gated task workflow scheduler",
    add_completion=False,
    no_args_is_help=True,
)


class Toggle(str, Enum):
    SET = "set"
    CLEAR = "clear"


class OutcomeChoice(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"


_EXCLUSION_LABELS: dict[ExclusionReason, str] = {
    ExclusionReason.DONE: "done",
    ExclusionReason.BREAKPOINT: "breakpoint set",
    ExclusionReason.UNMET_DEPENDENCY: "waiting on dependencies",
    ExclusionReason.EPIC_BARRIER: "behind an earlier epic",
}


def version_callback(value: bool) -> None:
    """Display version and exit."""
    if value:
        show_version()
        raise typer.Exit()


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Translate FLOWGATE errors into exit codes."""
    try:
        yield
    except UserCancelledError as e:
        print_info(f"\n{e}")
        raise typer.Exit(ExitCode.USER_CANCELLED) from e
    except FlowgateError as e:
        print_error(str(e))
        raise typer.Exit(e.exit_code) from e
    except KeyboardInterrupt as e:
        print_info("\nOperation cancelled by user")
        raise typer.Exit(ExitCode.USER_CANCELLED) from e


def _load_settings() -> Settings:
    config = ConfigManager()
    return config.load()


def _open_store(settings: Settings) -> MarkdownTaskStore:
    return MarkdownTaskStore(Path(settings.backlog_dir), epic_order=settings.get_epic_order())


def _print_executor_line(line: str) -> None:
    console.print(line, style="dim", markup=False, highlight=False)


def _build_runner(settings: Settings, store: MarkdownTaskStore, force: bool) -> WorkflowRunner:
    executor = ClaudeCodeExecutor(
        model=settings.claude_model,
        timeout_seconds=settings.get_timeout_seconds(),
        continue_sessions=settings.continue_sessions,
        output_callback=_print_executor_line,
    )
    executor.check_installed()
    return WorkflowRunner(
        store,
        executor,
        default_breakpoints=settings.get_default_breakpoints(),
        max_iterations=settings.max_iterations,
        epic_review=settings.epic_review,
        force=force,
    )


def _next_action(task: Task) -> str:
    plan = plan_dispatch(task.workflow_state)
    return plan.action.value if plan else "-"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version information",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    show_config: Annotated[
        bool,
        typer.Option(
            "--config",
            help="Show current configuration and exit",
        ),
    ] = False,
) -> None:
    """Phase-gated task workflow scheduler."""
    setup_logging()
    if show_config:
        config = ConfigManager()
        config.load()
        config.show()
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()


@app.command()
def run(
    task_id: Annotated[
        str | None,
        typer.Argument(help="Task to run (omit with --auto)"),
    ] = None,
    auto: Annotated[
        bool,
        typer.Option("--auto", help="Run all ready tasks in scheduler order"),
    ] = False,
    parallel: Annotated[
        int | None,
        typer.Option(
            "--parallel",
            help="Run up to N ready tasks of the current epic at once (default: from config)",
        ),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Ignore default breakpoints"),
    ] = False,
) -> None:
    """Run the workflow for one task, or for every ready task with --auto."""
    if not auto and not task_id:
        print_error("Provide a task id or use --auto")
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    if parallel is not None and parallel < 1:
        print_error("--parallel must be at least 1")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    with _handle_errors():
        settings = _load_settings()
        store = _open_store(settings)
        runner = _build_runner(settings, store, force)

        if auto:
            print_header("Auto Mode")
            summary = runner.run_auto(parallel=parallel or settings.max_parallel_tasks)
            print_info(f"Completed {len(summary.completed)} task(s): {summary.reason}")
            if summary.stopped_at:
                print_warning(f"Stopped at {summary.stopped_at}")
            return

        assert task_id is not None
        print_header(f"Running {task_id}")
        results = runner.run_task(task_id)
        last = results[-1]
        print_info(f"{task_id}: {last.to_state.value} ({last.status.value})")


@app.command()
def status(
    task_id: Annotated[
        str | None,
        typer.Argument(help="Show details for one task"),
    ] = None,
) -> None:
    """Show the board by workflow state, or one task in detail."""
    with _handle_errors():
        settings = _load_settings()
        store = _open_store(settings)
        tasks = store.load_all()

        if task_id:
            _show_task(find_task(tasks, task_id), tasks, Scheduler(store.epic_order()))
            return

        print_header("Workflow Status")
        grouped = tasks_by_state(tasks)
        table = Table(show_header=True, header_style="bold")
        table.add_column("State")
        table.add_column("Tasks")
        for state in STATE_ORDER:
            members = grouped.get(state, [])
            if not members:
                continue
            table.add_row(
                f"{format_state(state)} ({len(members)})",
                ", ".join(f"{t.id}{' ⏸' if t.breakpoint else ''}" for t in members),
            )
        console.print(table)
        done = len(grouped.get(WorkflowState.DONE, []))
        print_info(f"{done}/{len(tasks)} tasks done")


def _show_task(task: Task, tasks: list[Task], scheduler: Scheduler) -> None:
    print_header(f"{task.id}: {task.title}" if task.title else task.id)
    completed = completed_task_ids(tasks)
    console.print(f"Epic:      {task.epic}")
    console.print(f"State:     {format_state(task.workflow_state)}")
    console.print(f"Priority:  {task.priority.value}")
    if task.task_type:
        console.print(f"Type:      {task.task_type.value}")
    console.print(f"Next:      {_next_action(task)}")
    if task.assigned_agent:
        console.print(f"Agent:     {task.assigned_agent}")
    if task.breakpoint:
        console.print("[warning]Breakpoint set[/warning]")
    if task.skip_github:
        console.print("[warning]Skip GitHub (manual commit and PR)[/warning]")

    if task.depends_on:
        console.print("Depends on:")
        for dep in task.depends_on:
            mark = "[success]✓[/success]" if dep in completed else "[error]✗[/error]"
            console.print(f"  {mark} {dep}")
    blocked = dependents_of(tasks, task.id)
    if blocked:
        console.print(f"Blocks:    {', '.join(t.id for t in blocked)}")

    reason = scheduler.explain(task, tasks)
    if reason is None:
        console.print("[success]Ready to run[/success]")
    else:
        console.print(f"Not scheduled: {_EXCLUSION_LABELS[reason]}")


@app.command(name="next")
def next_tasks(
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum ready tasks to list"),
    ] = 5,
) -> None:
    """List ready tasks in dispatch order and explain the rest."""
    with _handle_errors():
        settings = _load_settings()
        store = _open_store(settings)
        tasks = store.load_all()
        scheduler = Scheduler(store.epic_order())

        ranked = scheduler.order(tasks)
        print_header("Ready Tasks")
        if ranked:
            table = Table(show_header=True, header_style="bold")
            table.add_column("#", justify="right")
            table.add_column("Task")
            table.add_column("Epic")
            table.add_column("Priority")
            table.add_column("State")
            table.add_column("Action")
            for i, task in enumerate(ranked[:limit], start=1):
                table.add_row(
                    str(i),
                    task.id,
                    task.epic,
                    task.priority.value,
                    task.workflow_state.value,
                    _next_action(task),
                )
            console.print(table)
            if len(ranked) > limit:
                print_info(f"... and {len(ranked) - limit} more")
        else:
            print_info("No ready tasks")

        blocked = scheduler.blocked(tasks)
        paused = [b for b in blocked if b.reason is ExclusionReason.BREAKPOINT]
        waiting = [b for b in blocked if b.reason is ExclusionReason.UNMET_DEPENDENCY]
        if paused:
            print_header("Paused (breakpoint)")
            for item in paused:
                console.print(f"  {item.task.id} {format_state(item.task.workflow_state)}")
        if waiting:
            print_header("Blocked")
            for item in waiting:
                console.print(f"  {item.task.id}: waiting on {', '.join(item.unmet)}")

        for warning in dependency_warnings(tasks):
            print_warning(warning)


@app.command(name="breakpoint")
def breakpoint_cmd(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    toggle: Annotated[Toggle, typer.Argument(help="set or clear")],
) -> None:
    """Set or clear the manual hold on a task."""
    with _handle_errors():
        store = _open_store(_load_settings())
        task = store.set_breakpoint(task_id, toggle is Toggle.SET)
        verb = "set" if task.breakpoint else "cleared"
        print_success(f"Breakpoint {verb} for {task_id} at {task.workflow_state.value}")


@app.command(name="skip-github")
def skip_github(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    toggle: Annotated[Toggle, typer.Argument(help="set or clear")],
) -> None:
    """Stop a task before the commit-and-PR phase for a manual PR."""
    with _handle_errors():
        store = _open_store(_load_settings())
        task = store.set_skip_github(task_id, toggle is Toggle.SET)
        verb = "set" if task.skip_github else "cleared"
        print_success(f"skip_github {verb} for {task_id}")


@app.command()
def report(
    task_id: Annotated[str, typer.Argument(help="Task id")],
    outcome: Annotated[OutcomeChoice, typer.Argument(help="Outcome of the current phase")],
) -> None:
    """Report the outcome of a phase performed outside flowgate."""
    with _handle_errors():
        settings = _load_settings()
        store = _open_store(settings)
        runner = WorkflowRunner(store, ClaudeCodeExecutor())
        new_state = runner.report_outcome(task_id, PhaseOutcome(outcome.value))
        print_success(f"{task_id} -> {format_state(new_state)}")


__all__ = ["app"]
