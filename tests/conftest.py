"""Shared pytest fixtures for FLOWGATE tests."""

from collections.abc import Callable
from pathlib import Path

import pytest

TASK_TEMPLATE = """---
id: {task_id}
title: {title}
epic: {epic}
priority: {priority}
workflow_state: {state}
depends_on: {depends_on}
breakpoint: {breakpoint}
{extra}---

# {title}

## Description

Task body.

## History

| Date | Transition | Agent |
|------|------------|-------|
"""


@pytest.fixture
def backlog_dir(tmp_path: Path) -> Path:
    """Create an empty backlog directory."""
    root = tmp_path / "backlog"
    (root / "tasks").mkdir(parents=True)
    return root


@pytest.fixture
def write_task(backlog_dir: Path) -> Callable[..., Path]:
    """Factory writing a task file into the backlog."""

    def _write(
        task_id: str,
        epic: str = "E1",
        state: str = "DRAFT",
        priority: str = "medium",
        depends_on: list[str] | None = None,
        breakpoint: bool = False,
        extra: str = "",
        completed: bool = False,
    ) -> Path:
        folder = backlog_dir / ("completed" if completed else "tasks") / epic
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / f"{task_id}.md"
        path.write_text(
            TASK_TEMPLATE.format(
                task_id=task_id,
                title=f"Task {task_id}",
                epic=epic,
                priority=priority,
                state=state,
                depends_on="[" + ", ".join(depends_on or []) + "]",
                breakpoint="true" if breakpoint else "false",
                extra=extra,
            )
        )
        return path

    return _write


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file with sample values."""
    config_file = tmp_path / ".flowgate-config"
    config_file.write_text(
        """# FLOWGATE Configuration
BACKLOG_DIR="work/backlog"
EPIC_ORDER="setup,core,polish"
DEFAULT_BREAKPOINTS="PR_READY"
MAX_ITERATIONS="30"
EPIC_REVIEW="true"
"""
    )
    return config_file
