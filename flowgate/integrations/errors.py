"""Phase executor errors.

All errors inherit from FlowgateError to carry exit code semantics.
"""

from typing import ClassVar

from flowgate.utils.errors import ExitCode, FlowgateError


class ExecutorNotInstalledError(FlowgateError):
    """Raised when the executor CLI (`claude` by default) is not found in PATH."""

    _default_exit_code: ClassVar[ExitCode] = ExitCode.EXECUTOR_ERROR


class ExecutorTimeoutError(FlowgateError):
    """Raised when a phase run exceeds the configured timeout.

    Attributes:
        timeout_seconds: The timeout duration that was exceeded (if known)
    """

    _default_exit_code: ClassVar[ExitCode] = ExitCode.EXECUTOR_ERROR

    def __init__(self, message: str, timeout_seconds: float | None = None) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


__all__ = ["ExecutorNotInstalledError", "ExecutorTimeoutError"]
