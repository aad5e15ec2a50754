"""Utility modules for FLOWGATE."""

from flowgate.utils.console import (
    console,
    print_error,
    print_header,
    print_info,
    print_step,
    print_success,
    print_warning,
)
from flowgate.utils.errors import (
    ConfigurationError,
    ExitCode,
    FlowgateError,
    UserCancelledError,
)
from flowgate.utils.logging import get_logger, log_command, log_message, setup_logging

__all__ = [
    "console",
    "print_error",
    "print_header",
    "print_info",
    "print_step",
    "print_success",
    "print_warning",
    "ConfigurationError",
    "ExitCode",
    "FlowgateError",
    "UserCancelledError",
    "get_logger",
    "log_command",
    "log_message",
    "setup_logging",
]
