"""Custom exceptions and exit codes for FLOWGATE.

This module defines the exit codes and exception hierarchy used throughout
the application. Every error raised by the scheduler core, the task store,
the phase executor and the CLI derives from FlowgateError.
"""

from enum import IntEnum
from typing import ClassVar


class ExitCode(IntEnum):
    """Process exit codes.

    These codes are used for consistent error reporting and can be
    checked by calling scripts or CI systems.
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    CONFIGURATION_ERROR = 2
    PHASE_FAILED = 3
    TASK_NOT_FOUND = 4
    EXECUTOR_ERROR = 5
    USER_CANCELLED = 6


class FlowgateError(Exception):
    """Base exception for FLOWGATE errors.

    All custom exceptions in this application should inherit from this class.
    Each exception type has an associated exit code for proper error reporting.
    """

    _default_exit_code: ClassVar[ExitCode] = ExitCode.GENERAL_ERROR

    def __init__(self, message: str, exit_code: ExitCode | None = None) -> None:
        """Initialize the exception."""
        super().__init__(message)
        self._exit_code = exit_code

    @property
    def exit_code(self) -> ExitCode:
        """Get the exit code for this exception."""
        if self._exit_code is not None:
            return self._exit_code
        return self.__class__._default_exit_code


class ConfigurationError(FlowgateError):
    """The workflow definition or its inputs are inconsistent.

    Raised when:
    - A state is missing from the transition or action tables
    - A config value names an unknown workflow state
    - A task record cannot be interpreted
    """

    _default_exit_code: ClassVar[ExitCode] = ExitCode.CONFIGURATION_ERROR


class InvalidTransitionError(ConfigurationError):
    """An outcome was reported that the state table cannot route.

    Raised when:
    - ``rejected`` is reported for a state without a rejection path
    - An outcome is reported for a terminal state
    """

    def __init__(self, message: str, state: str | None = None) -> None:
        super().__init__(message)
        self.state = state


class TaskRecordError(ConfigurationError):
    """A task record is malformed.

    Raised when:
    - The workflow_state or priority value is not recognized
    - A required field (id, epic) is missing
    - The front matter is not valid YAML
    """

    def __init__(self, message: str, task_id: str | None = None) -> None:
        if task_id and not message.startswith(f"[{task_id}]"):
            message = f"[{task_id}] {message}"
        super().__init__(message)
        self.task_id = task_id


class PhaseFailedError(FlowgateError):
    """A phase reported ``failed`` in a state with no failure terminal.

    The task is held on a breakpoint so that automatic runs never
    retry it without an operator.
    """

    _default_exit_code: ClassVar[ExitCode] = ExitCode.PHASE_FAILED

    def __init__(self, message: str, task_id: str, state: str) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.state = state


class TaskNotFoundError(FlowgateError):
    """No task with the requested id exists in the backlog."""

    _default_exit_code: ClassVar[ExitCode] = ExitCode.TASK_NOT_FOUND

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class UserCancelledError(FlowgateError):
    """User cancelled the operation.

    Raised when:
    - User presses Ctrl+C
    - User declines a required confirmation
    """

    _default_exit_code: ClassVar[ExitCode] = ExitCode.USER_CANCELLED


__all__ = [
    "ExitCode",
    "FlowgateError",
    "ConfigurationError",
    "InvalidTransitionError",
    "TaskRecordError",
    "PhaseFailedError",
    "TaskNotFoundError",
    "UserCancelledError",
]
