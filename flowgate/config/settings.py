"""Settings dataclass for FLOWGATE configuration.

This module defines the Settings dataclass that holds all configuration
values understood by the scheduler, the runner and the phase executor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flowgate.workflow.states import WorkflowState


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Configuration settings for FLOWGATE.

    All settings have sensible defaults and can be loaded from the
    global (~/.flowgate-config) or local (.flowgate) configuration files.

    Attributes:
        backlog_dir: Directory holding tasks/ and completed/ epic folders
        epic_order: Comma-separated epic ids in definition order
            (empty = sorted epic directory names)
        default_breakpoints: Comma-separated workflow states at which a run pauses
        max_iterations: Maximum phase steps for a single-task run
        executor_timeout_seconds: Per-phase executor timeout (0 = no timeout)
        claude_model: Model passed to the executor CLI (empty = CLI default)
        continue_sessions: Reuse the previous executor session where fresh
            context is not required
        epic_review: Run the epic-review action once per completed epic
        max_parallel_tasks: Maximum tasks dispatched concurrently in auto mode
    """

    backlog_dir: str = "backlog"
    epic_order: str = ""
    default_breakpoints: str = ""

    # Runner settings
    max_iterations: int = 20
    epic_review: bool = False
    max_parallel_tasks: int = 1

    # Executor settings
    executor_timeout_seconds: int = 0
    claude_model: str = ""
    continue_sessions: bool = False

    # Config key to attribute mapping
    _key_mapping: dict[str, str] = field(
        default_factory=lambda: {
            "BACKLOG_DIR": "backlog_dir",
            "EPIC_ORDER": "epic_order",
            "DEFAULT_BREAKPOINTS": "default_breakpoints",
            "MAX_ITERATIONS": "max_iterations",
            "EPIC_REVIEW": "epic_review",
            "MAX_PARALLEL_TASKS": "max_parallel_tasks",
            "EXECUTOR_TIMEOUT_SECONDS": "executor_timeout_seconds",
            "CLAUDE_MODEL": "claude_model",
            "CONTINUE_SESSIONS": "continue_sessions",
        },
        repr=False,
    )

    def get_attribute_for_key(self, key: str) -> str | None:
        """Get the attribute name for a config key.

        Args:
            key: Configuration key (e.g., "EPIC_ORDER")

        Returns:
            Attribute name or None if key is unknown
        """
        return self._key_mapping.get(key)

    def get_key_for_attribute(self, attr: str) -> str | None:
        """Get the config key for an attribute name."""
        for key, value in self._key_mapping.items():
            if value == attr:
                return key
        return None

    @classmethod
    def get_config_keys(cls) -> list[str]:
        """Get list of all valid configuration keys."""
        temp = cls()
        return list(temp._key_mapping.keys())

    def get_epic_order(self) -> list[str]:
        """Configured epic definition order, empty when not set."""
        return _split_list(self.epic_order)

    def get_default_breakpoints(self) -> frozenset[WorkflowState]:
        """Parse DEFAULT_BREAKPOINTS into workflow states.

        Raises:
            ConfigurationError: If a listed state is not a workflow state
        """
        from flowgate.workflow.states import parse_workflow_state

        return frozenset(
            parse_workflow_state(name, context="DEFAULT_BREAKPOINTS")
            for name in _split_list(self.default_breakpoints)
        )

    def get_timeout_seconds(self) -> float | None:
        """Executor timeout in seconds, None when disabled."""
        if self.executor_timeout_seconds <= 0:
            return None
        return float(self.executor_timeout_seconds)


# Default configuration file path
CONFIG_FILE = Path.home() / ".flowgate-config"
