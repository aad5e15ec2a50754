"""Terminal output for FLOWGATE.

Everything the CLI and the runner show goes through the rich consoles
defined here. Messages printed with the ``print_*`` helpers are mirrored
to the trace log when ``FLOWGATE_LOG`` is on.
"""

from rich.console import Console
from rich.theme import Theme

from flowgate import __version__

custom_theme = Theme(
    {
        "error": "bold red",
        "success": "bold green",
        "warning": "bold yellow",
        "info": "bold blue",
        "header": "bold magenta",
        "step": "bold cyan",
        # workflow state categories
        "state.actionable": "cyan",
        "state.in_flight": "yellow",
        "state.done": "green",
        "state.failed": "red",
    }
)

console = Console(theme=custom_theme)
console_err = Console(theme=custom_theme, stderr=True)


def _mirror(level: str, message: str) -> None:
    from flowgate.utils.logging import log_message

    log_message(f"{level}: {message}")


def print_error(message: str) -> None:
    console_err.print(f"[error]✗[/error] {message}", highlight=False)
    _mirror("ERROR", message)


def print_success(message: str) -> None:
    console.print(f"[success]✓[/success] {message}", highlight=False)
    _mirror("SUCCESS", message)


def print_warning(message: str) -> None:
    console.print(f"[warning]![/warning] {message}", highlight=False)
    _mirror("WARNING", message)


def print_info(message: str) -> None:
    console.print(f"[info]·[/info] {message}", highlight=False)
    _mirror("INFO", message)


def print_header(title: str) -> None:
    console.print()
    console.print(f"[header]── {title} ──[/header]")


def print_step(message: str) -> None:
    """Print the start of a phase run."""
    console.print(f"[step]➜[/step] {message}", highlight=False)


def format_state(state) -> str:
    """Return rich markup for a workflow state, colored by its category."""
    from flowgate.workflow.states import StateCategory, WorkflowState, state_category

    if state is WorkflowState.DONE:
        style = "state.done"
    elif state_category(state) is StateCategory.TERMINAL:
        style = "state.failed"
    elif state_category(state) is StateCategory.IN_FLIGHT:
        style = "state.in_flight"
    else:
        style = "state.actionable"
    return f"[{style}]{state.value}[/{style}]"


def print_transition(task_id: str, from_state, to_state) -> None:
    """Print one recorded state change, e.g. ``T-1: QA_REVIEW -> IMPLEMENTING``."""
    console.print(
        f"  {task_id}: {format_state(from_state)} -> {format_state(to_state)}",
        highlight=False,
    )
    _mirror("STATE", f"{task_id}: {from_state.value} -> {to_state.value}")


def show_version() -> None:
    from flowgate import EXECUTOR_COMMAND

    console.print(f"[bold]FLOWGATE[/bold] v{__version__}")
    console.print(f"Phase executor: {EXECUTOR_COMMAND}")


__all__ = [
    "console",
    "console_err",
    "custom_theme",
    "format_state",
    "print_error",
    "print_success",
    "print_warning",
    "print_info",
    "print_header",
    "print_step",
    "print_transition",
    "show_version",
]
