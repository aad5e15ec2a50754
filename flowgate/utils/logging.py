"""Trace log for FLOWGATE runs.

Off unless ``FLOWGATE_LOG=true``. When on, every state change, phase
dispatch, flag toggle and executor command is appended as one line to
``FLOWGATE_LOG_FILE`` (default ``~/.flowgate.log``), for example::

    [2026-03-14 09:30:00] DISPATCH T-1: implement (fresh_context=False)
    [2026-03-14 09:41:12] TRANSITION T-1: IMPLEMENTING -> IMPLEMENTED (accepted)
"""

import logging
import os
from pathlib import Path

LOG_ENABLED = os.environ.get("FLOWGATE_LOG", "false").lower() == "true"
LOG_FILE = Path(os.environ.get("FLOWGATE_LOG_FILE", str(Path.home() / ".flowgate.log")))

_logger: logging.Logger | None = None


def setup_logging() -> logging.Logger:
    """Attach the file handler, or a NullHandler when tracing is off."""
    global _logger

    if _logger is not None:
        return _logger

    logger = logging.getLogger("flowgate")
    logger.handlers.clear()
    logger.propagate = False

    if LOG_ENABLED:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(LOG_FILE)
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", "%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    else:
        logger.addHandler(logging.NullHandler())

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    return _logger if _logger is not None else setup_logging()


def log_message(message: str) -> None:
    get_logger().info(message)


def log_command(command: str, exit_code: int = 0) -> None:
    """Record an external command and its exit code."""
    get_logger().info(f"COMMAND: {command} | EXIT_CODE: {exit_code}")


def log_transition(task_id: str, from_state: str, to_state: str, reason: str = "") -> None:
    """Record a workflow state change for one task."""
    suffix = f" ({reason})" if reason else ""
    get_logger().info(f"TRANSITION {task_id}: {from_state} -> {to_state}{suffix}")


def log_dispatch(task_id: str, action: str, fresh_context: bool) -> None:
    """Record a phase handed to the executor."""
    get_logger().info(f"DISPATCH {task_id}: {action} (fresh_context={fresh_context})")


def log_flag(task_id: str, flag: str, enabled: bool) -> None:
    get_logger().info(f"{flag.upper()} {task_id}: {'set' if enabled else 'cleared'}")


__all__ = [
    "LOG_ENABLED",
    "LOG_FILE",
    "setup_logging",
    "get_logger",
    "log_message",
    "log_command",
    "log_transition",
    "log_dispatch",
    "log_flag",
]
