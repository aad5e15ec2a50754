"""Context policy for phase dispatch.

Independent review phases must not inherit the conversation that produced
the work under review, so the executor is asked to start them in an
isolated session.
"""

from flowgate.workflow.states import WorkflowState

FRESH_CONTEXT_STATES: frozenset[WorkflowState] = frozenset(
    {
        WorkflowState.UI_REVIEW,
        WorkflowState.CODE_REVIEW,
        WorkflowState.QA_REVIEW,
    }
)


def needs_fresh_context(state: WorkflowState) -> bool:
    """True when a phase run for ``state`` must start with a fresh session."""
    return state in FRESH_CONTEXT_STATES


__all__ = ["FRESH_CONTEXT_STATES", "needs_fresh_context"]
