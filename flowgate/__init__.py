"""FLOWGATE - Phase-gated task workflow scheduler.

This package drives backlog tasks through an ordered sequence of
workflow phases (analysis, review, implementation, verification,
documentation, release), grouped into ordered epics.
"""

__version__ = "1.0.0"
SCRIPT_NAME = "FLOWGATE"
EXECUTOR_COMMAND = "claude"

__all__ = [
    "__version__",
    "SCRIPT_NAME",
    "EXECUTOR_COMMAND",
]
