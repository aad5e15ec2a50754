"""Phase outcomes and dispatch planning.

Turns the state table into the two decisions the runner needs:

- plan_dispatch: which action to run for a task's current state, and
  whether the task must first be moved to an in-flight state
- apply_outcome: which state a reported outcome leads to
"""

from dataclasses import dataclass
from enum import Enum

from flowgate.utils.errors import InvalidTransitionError, PhaseFailedError
from flowgate.workflow.context import needs_fresh_context
from flowgate.workflow.states import (
    Action,
    StateCategory,
    WorkflowState,
    get_next_state,
    get_required_action,
    is_terminal,
    owning_state,
    state_category,
)


class PhaseOutcome(Enum):
    """Terminal result of one phase run."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"


# Where a ``failed`` outcome lands; any other state surfaces the failure
FAILURE_TERMINALS: dict[WorkflowState, WorkflowState] = {
    WorkflowState.INTEGRATION_TESTING: WorkflowState.INTEGRATION_FAILED,
    WorkflowState.PR_READY: WorkflowState.PR_FAILED,
    WorkflowState.PR_CREATED: WorkflowState.PR_FAILED,
    WorkflowState.PR_REVIEW: WorkflowState.PR_FAILED,
}


@dataclass(frozen=True)
class DispatchPlan:
    """How to run the phase for a task's current state.

    Attributes:
        action: Action the executor performs
        claim_state: In-flight state to persist before running, if any
        outcome_state: State the reported outcome is applied to
        fresh_context: Whether the executor must start an isolated session
    """

    action: Action
    claim_state: WorkflowState | None
    outcome_state: WorkflowState
    fresh_context: bool


def plan_dispatch(state: WorkflowState) -> DispatchPlan | None:
    """Plan the next phase run for a task in ``state``.

    An actionable state whose successor is in-flight is claimed first: the
    task moves to the in-flight state and the outcome is applied there.
    An in-flight state found at scheduling time (after a rejection loop or
    an interrupted run) resumes by re-running the action that owns it.

    Returns:
        The plan, or None for terminal states and for in-flight states that
        no resumable action owns (they wait for an externally reported
        outcome).
    """
    category = state_category(state)
    if category is StateCategory.TERMINAL:
        return None

    if category is StateCategory.ACTIONABLE:
        action = get_required_action(state)
        assert action is not None
        successor = get_next_state(state)
        if successor is not None and state_category(successor) is StateCategory.IN_FLIGHT:
            return DispatchPlan(
                action=action,
                claim_state=successor,
                outcome_state=successor,
                fresh_context=needs_fresh_context(successor),
            )
        return DispatchPlan(
            action=action,
            claim_state=None,
            outcome_state=state,
            fresh_context=needs_fresh_context(state),
        )

    action = resume_action(state)
    if action is None:
        return None
    return DispatchPlan(
        action=action,
        claim_state=None,
        outcome_state=state,
        fresh_context=needs_fresh_context(state),
    )


def resume_action(state: WorkflowState) -> Action | None:
    """Action that drives an in-flight state.

    None when nothing owns the state, or when its action is not safe to
    repeat (PR_CREATED: the commit and PR may already exist). Such tasks
    wait for an externally reported outcome.
    """
    owner = owning_state(state)
    if owner is None:
        return None
    action = get_required_action(owner)
    if action is None or not action.resumable:
        return None
    return action


def apply_outcome(task_id: str, state: WorkflowState, outcome: PhaseOutcome) -> WorkflowState:
    """Compute the state a phase outcome leads to.

    Raises:
        InvalidTransitionError: If the state is terminal, or ``rejected`` is
            reported for a state without a rejection path.
        PhaseFailedError: If ``failed`` is reported for a state with no
            failure terminal. Failures are never retried automatically.
    """
    if is_terminal(state):
        raise InvalidTransitionError(
            f"[{task_id}] Cannot apply {outcome.value} to terminal state {state.value}",
            state=state.value,
        )

    if outcome is PhaseOutcome.FAILED:
        if state in FAILURE_TERMINALS:
            return FAILURE_TERMINALS[state]
        raise PhaseFailedError(
            f"[{task_id}] Phase failed in {state.value}; manual handling required",
            task_id=task_id,
            state=state.value,
        )

    next_state = get_next_state(state, rejected=outcome is PhaseOutcome.REJECTED)
    assert next_state is not None
    return next_state


__all__ = [
    "PhaseOutcome",
    "FAILURE_TERMINALS",
    "DispatchPlan",
    "plan_dispatch",
    "resume_action",
    "apply_outcome",
]
