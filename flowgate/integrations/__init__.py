"""External collaborators: phase executors."""

from flowgate.integrations.errors import ExecutorNotInstalledError, ExecutorTimeoutError
from flowgate.integrations.executor import (
    ClaudeCodeExecutor,
    PhaseExecutor,
    PhaseResult,
    parse_verdict,
)

__all__ = [
    "ClaudeCodeExecutor",
    "ExecutorNotInstalledError",
    "ExecutorTimeoutError",
    "PhaseExecutor",
    "PhaseResult",
    "parse_verdict",
]
